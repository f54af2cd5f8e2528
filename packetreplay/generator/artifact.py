"""
Catalog and script artifact persistence.

A generated artifact is a directory holding:

    manifest.json            protocol version, catalog entries, summary counters
    script.txt               the action script, one action per line
    packets/<name>.json      structured catalog entries
    packets/<name>.bin       binary catalog entries (exact wire bytes)

The script is rendered through a Jinja2 template and parsed back by
ArtifactLoader, which also enforces catalog/script referential integrity.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import jinja2

from packetreplay.exceptions import ArtifactError
from packetreplay.models import (
    ACTION_TYPES,
    Action,
    CatalogEntry,
    GenerationResult,
    LevelChunks,
    Sleep,
    WaitFor,
    missing_references,
)
from packetreplay.serialization import dumps_params, loads_params

MANIFEST_FILE = "manifest.json"
SCRIPT_FILE = "script.txt"
PACKETS_DIR = "packets"
SCRIPT_TEMPLATE = "script.j2"
MANIFEST_ENTRY_KEYS = ("export_name", "source_name", "is_binary", "file")


def action_argument(action: Action) -> str:
    if isinstance(action, Sleep):
        return str(action.ms)
    if isinstance(action, WaitFor):
        return action.packet_name
    if isinstance(action, LevelChunks):
        return str(action.distance)
    return action.references()


def entry_file(entry: CatalogEntry) -> str:
    """Path of an entry's body relative to the artifact directory."""
    suffix = ".bin" if entry.is_binary else ".json"
    return f"{PACKETS_DIR}/{entry.export_name}{suffix}"


@dataclass
class ReplayArtifact:
    """A loaded catalog and script, ready for replay."""

    version: str
    catalog: Dict[str, CatalogEntry] = field(default_factory=dict)
    script: List[Action] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)


class ArtifactWriter:
    """Writes a GenerationResult to an artifact directory."""

    def __init__(self, output_dir: str, template_dir: Optional[str] = None, debug: bool = False):
        """
        Initialize the artifact writer.

        Args:
            output_dir: Directory to write the artifact to
            template_dir: Directory containing a custom script.j2 (optional)
            debug: Enable debug logging

        Raises:
            ValueError: If output_dir exists but is not a directory
        """
        if os.path.exists(output_dir) and not os.path.isdir(output_dir):
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.output_dir = output_dir
        self.template_dir = template_dir

        # Set up logging
        self.logger = logging.getLogger("packetreplay.generator.artifact")
        level = logging.DEBUG if debug else logging.INFO

        # Configure logging only if not already configured
        if not self.logger.handlers:
            logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
            self.logger.setLevel(level)

    def plan(self, result: GenerationResult) -> List[str]:
        """Relative paths write() would create for ``result``."""
        paths = [entry_file(entry) for entry in result.used_entries()]
        return paths + [MANIFEST_FILE, SCRIPT_FILE]

    def render_script(self, result: GenerationResult, source: Optional[str] = None) -> str:
        template = self._load_template()
        return template.render(
            version=result.version,
            source=source,
            entry_count=len(result.used_entries()),
            actions=[
                {"kind": action.kind, "argument": action_argument(action)}
                for action in result.script
            ],
        )

    def write(self, result: GenerationResult, source: Optional[str] = None) -> List[str]:
        """
        Write the artifact.

        Args:
            result: Generated catalog and script
            source: Name of the dump the result came from (recorded in the script header)

        Returns:
            Paths of the written files

        Raises:
            ArtifactError: If the script references unknown catalog entries
            OSError: If there are issues creating output files
        """
        missing = missing_references(result.script, result.catalog)
        if missing:
            raise ArtifactError(f"Script references unknown catalog entries: {', '.join(missing)}")

        entries = result.used_entries()
        manifest = {
            "version": result.version,
            "player_entity_id": result.player_entity_id,
            "summary": result.summary.to_dict(),
            "entries": [
                {
                    "export_name": entry.export_name,
                    "source_name": entry.source_name,
                    "is_binary": entry.is_binary,
                    "file": entry_file(entry),
                }
                for entry in entries
            ],
        }

        written = []
        try:
            os.makedirs(os.path.join(self.output_dir, PACKETS_DIR), exist_ok=True)

            for entry in entries:
                path = os.path.join(self.output_dir, entry_file(entry))
                if entry.is_binary:
                    with open(path, "wb") as f:
                        f.write(entry.raw)
                else:
                    with open(path, "w", encoding="utf-8") as f:
                        f.write(dumps_params(entry.params, indent=2))
                        f.write("\n")
                written.append(path)
                self.logger.debug(f"  Generated: {entry_file(entry)}")

            manifest_path = os.path.join(self.output_dir, MANIFEST_FILE)
            with open(manifest_path, "w", encoding="utf-8") as f:
                f.write(dumps_params(manifest, indent=2))
                f.write("\n")
            written.append(manifest_path)

            script_path = os.path.join(self.output_dir, SCRIPT_FILE)
            with open(script_path, "w", encoding="utf-8") as f:
                f.write(self.render_script(result, source))
            written.append(script_path)
        except OSError as e:
            error_msg = f"Error saving artifact to {self.output_dir}: {e}"
            self.logger.error(error_msg)
            raise OSError(error_msg) from e

        self.logger.info(f"Wrote {len(entries)} packet files, manifest and script to {self.output_dir}")
        return written

    def _load_template(self) -> jinja2.Template:
        """
        Load the script template.

        A script.j2 in the custom template directory wins over the packaged one.

        Raises:
            ValueError: If the template cannot be found
        """
        env_settings = {
            "trim_blocks": True,
            "lstrip_blocks": True,
            "auto_reload": False,
            "autoescape": False,
            "keep_trailing_newline": True,
        }

        search_path = []
        if self.template_dir and os.path.isdir(self.template_dir):
            search_path.append(self.template_dir)
        module_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        search_path.append(os.path.join(module_dir, "templates"))

        env = jinja2.Environment(loader=jinja2.FileSystemLoader(search_path), **env_settings)
        try:
            return env.get_template(SCRIPT_TEMPLATE)
        except jinja2.exceptions.TemplateNotFound:
            error_msg = f"Template not found: {SCRIPT_TEMPLATE}"
            self.logger.error(error_msg)
            raise ValueError(error_msg)


def parse_script(text: str) -> List[Action]:
    """
    Parse script text rendered by ArtifactWriter.

    Raises:
        ArtifactError: On unknown actions or malformed arguments
    """
    script = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        kind, _, argument = line.partition(" ")
        argument = argument.strip()
        action_type = ACTION_TYPES.get(kind)
        if action_type is None:
            raise ArtifactError(f"Line {lineno}: unknown action '{kind}'")
        if not argument:
            raise ArtifactError(f"Line {lineno}: '{kind}' needs an argument")

        if action_type in (Sleep, LevelChunks):
            try:
                value = int(argument)
            except ValueError:
                raise ArtifactError(f"Line {lineno}: '{kind}' needs an integer, got '{argument}'")
            if value < 0:
                raise ArtifactError(f"Line {lineno}: '{kind}' must not be negative")
            script.append(action_type(value))
        else:
            script.append(action_type(argument))
    return script


class ArtifactLoader:
    """Loads an artifact directory written by ArtifactWriter."""

    def __init__(self, artifact_dir: str):
        if not os.path.isdir(artifact_dir):
            raise FileNotFoundError(f"Artifact directory not found: {artifact_dir}")
        self.artifact_dir = artifact_dir

    def load(self) -> ReplayArtifact:
        """
        Load catalog and script.

        Raises:
            ArtifactError: If files are missing or the script references unknown entries
        """
        manifest_path = os.path.join(self.artifact_dir, MANIFEST_FILE)
        script_path = os.path.join(self.artifact_dir, SCRIPT_FILE)
        for path in (manifest_path, script_path):
            if not os.path.exists(path):
                raise ArtifactError(f"Missing artifact file: {path}")

        with open(manifest_path, "r", encoding="utf-8") as f:
            try:
                manifest = loads_params(f.read())
            except ValueError as e:
                raise ArtifactError(f"Invalid manifest {manifest_path}: {e}") from e

        if not isinstance(manifest, dict):
            raise ArtifactError(f"Invalid manifest {manifest_path}: expected a JSON object")
        entries = manifest.get("entries", [])
        if not isinstance(entries, list):
            raise ArtifactError(f"Invalid manifest {manifest_path}: 'entries' must be a list")

        catalog = {}
        for index, item in enumerate(entries):
            if not isinstance(item, dict):
                raise ArtifactError(f"Invalid manifest entry #{index}: expected a JSON object")
            missing_keys = [key for key in MANIFEST_ENTRY_KEYS if key not in item]
            if missing_keys:
                raise ArtifactError(f"Invalid manifest entry #{index}: missing {', '.join(missing_keys)}")

            path = os.path.join(self.artifact_dir, item["file"])
            if not os.path.exists(path):
                raise ArtifactError(f"Missing packet file for '{item['export_name']}': {path}")
            if item["export_name"] in catalog:
                raise ArtifactError(f"Duplicate export name in manifest: {item['export_name']}")

            if item["is_binary"]:
                with open(path, "rb") as f:
                    entry = CatalogEntry(item["export_name"], item["source_name"], True, raw=f.read())
            else:
                with open(path, "r", encoding="utf-8") as f:
                    entry = CatalogEntry(item["export_name"], item["source_name"], False, params=loads_params(f.read()))
            catalog[entry.export_name] = entry

        with open(script_path, "r", encoding="utf-8") as f:
            script = parse_script(f.read())

        missing = missing_references(script, catalog)
        if missing:
            raise ArtifactError(f"Script references unknown catalog entries: {', '.join(missing)}")

        return ReplayArtifact(
            version=manifest.get("version", ""),
            catalog=catalog,
            script=script,
            summary=manifest.get("summary", {}),
        )
