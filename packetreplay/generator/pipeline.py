"""
Action script generation pipeline.

This module converts the frames of one packet dump into a deduplicated packet
catalog and an ordered action script that a replay session can execute to
reproduce the recorded server.
"""

import re
import base64
import math
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from packetreplay.generator.config import MINIMAL_CONFIG, GenerationConfig
from packetreplay.models import (
    SERVERBOUND,
    Action,
    CatalogEntry,
    GenerationResult,
    GenerationSummary,
    LevelChunks,
    PacketFrame,
    Queue,
    Sleep,
    WaitFor,
    Write,
)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_]")


def export_base(name: str) -> str:
    """Packet name reduced to characters safe in file names and script lines."""
    return _UNSAFE_CHARS.sub("_", name) or "_"


def sanitize_export_name(name: str, count: int) -> str:
    """Export name for the ``count``-th distinct body of packet ``name``."""
    base = export_base(name)
    return f"{base}_{count}" if count > 1 else base


def content_key(raw: bytes) -> str:
    """Dedup key of a frame: its raw bytes, base64 encoded."""
    return base64.b64encode(raw).decode("ascii")


class PlayerEntityContext:
    """The tracked player's entity id, captured once per generation run."""

    def __init__(self):
        self.entity_id: Any = None

    @property
    def known(self) -> bool:
        return self.entity_id is not None

    def capture(self, entity_id: Any) -> bool:
        """Record the id unless one is already known. Returns True if recorded."""
        if self.known or entity_id is None:
            return False
        self.entity_id = entity_id
        return True

    def matches(self, entity_id: Any) -> bool:
        if entity_id is None:
            return False
        # Codecs may surface 64-bit ids as strings
        return entity_id == self.entity_id or str(entity_id) == str(self.entity_id)


class _GenerationRun:
    """Mutable state of a single generate() call."""

    def __init__(self, config: GenerationConfig, logger: logging.Logger, version: str):
        self.config = config
        self.logger = logger
        self.version = version
        self.summary = GenerationSummary()
        self.catalog: Dict[str, CatalogEntry] = {}
        self.script: List[Action] = []
        self.dedup_index: Dict[str, str] = {}
        self.name_counts: Dict[str, int] = {}
        self.unique_seen: Set[str] = set()
        self.player = PlayerEntityContext()
        self.last_timestamp: Optional[int] = None
        self.timing_active = config.loading_screen_packet is None
        self.level_chunks_inserted = False

    def feed(self, frame: PacketFrame) -> None:
        self.summary.total += 1

        if frame.direction == SERVERBOUND:
            # Serverbound frames only resolve waits and move the gap baseline
            self.summary.serverbound += 1
            if not frame.decoded:
                self._record_failure(frame)
            self.last_timestamp = frame.timestamp_ms
            return

        self.summary.clientbound += 1
        self._synthesize_sleep(frame.timestamp_ms)

        if not frame.decoded:
            self._record_failure(frame)
            return

        name = frame.name
        params = frame.params
        config = self.config

        if name == config.player_handshake_packet and isinstance(params, dict):
            if self.player.capture(params.get(config.player_handshake_field)):
                self.logger.info(f"Player entity id: {self.player.entity_id}")

        if name in config.skip_packets:
            self.summary.skipped += 1
            return

        if name in config.player_entity_packets and self.player.known:
            if not self.player.matches(self._entity_id(params)):
                self.logger.debug(f"  [OTHER ENTITY] {name}")
                self.summary.skipped += 1
                return

        # Checked before dedup reuse so repeats never reach the script
        if name in config.unique_only_packets and name in self.unique_seen:
            self.summary.skipped += 1
            return

        key = content_key(frame.raw)
        export_name = self.dedup_index.get(key)
        if export_name is not None:
            self.logger.debug(f"  [DUP] {name} - same as {export_name}")
            self.summary.duplicates += 1
        else:
            export_name = self._allocate_export_name(name)
            is_binary = name in config.binary_packets
            self.catalog[export_name] = CatalogEntry(
                export_name=export_name,
                source_name=name,
                is_binary=is_binary,
                params=None if is_binary else params,
                raw=frame.raw if is_binary else None,
            )
            self.dedup_index[key] = export_name
            self.logger.debug(f"  C {name} ({export_name}) - {len(frame.raw)} bytes")

        if name in config.write_packets:
            self.script.append(Write(export_name))
        else:
            self.script.append(Queue(export_name))

        if name in config.unique_only_packets:
            self.unique_seen.add(name)

        wait_for = config.response_for(name)
        if wait_for is not None:
            self.script.append(WaitFor(wait_for))
            self.logger.debug(f"  [WAIT] {wait_for}")
            if wait_for == config.loading_screen_packet and not self.timing_active:
                self.timing_active = True
                self.logger.debug("  Loading screen passed, reconstructing sleep gaps from here")

        if (
            config.level_chunks_after is not None
            and export_name == config.level_chunks_after
            and not self.level_chunks_inserted
        ):
            self.script.append(LevelChunks(config.level_chunks_distance))
            self.level_chunks_inserted = True

    def _synthesize_sleep(self, timestamp_ms: int) -> None:
        if self.timing_active and self.last_timestamp is not None:
            gap = timestamp_ms - self.last_timestamp
            if gap >= self.config.sleep_threshold_ms:
                granularity = self.config.sleep_granularity_ms
                sleep_ms = int(math.floor(gap / granularity + 0.5)) * granularity
                if sleep_ms > 0:
                    self.script.append(Sleep(sleep_ms))
                    self.logger.debug(f"  [SLEEP] {sleep_ms}ms")
        self.last_timestamp = timestamp_ms

    def _entity_id(self, params: Any) -> Any:
        if not isinstance(params, dict):
            return None
        for field_name in self.config.player_entity_fields:
            value = params.get(field_name)
            if value is not None:
                return value
        return None

    def _allocate_export_name(self, name: str) -> str:
        base = export_base(name)
        count = self.name_counts.get(base, 0) + 1
        export_name = sanitize_export_name(name, count)
        # A packet literally named "<base>_<n>" may already hold the suffixed name
        while export_name in self.catalog:
            count += 1
            export_name = sanitize_export_name(name, count)
        self.name_counts[base] = count
        return export_name

    def _record_failure(self, frame: PacketFrame) -> None:
        self.summary.failed += 1
        self.logger.warning(
            f"Skipping undecodable {'serverbound' if frame.direction == SERVERBOUND else 'clientbound'} "
            f"frame at {frame.timestamp_ms}ms ({len(frame.raw)} bytes)"
        )

    def finish(self) -> GenerationResult:
        has_sends = any(action.references() is not None for action in self.script)
        if has_sends and self.config.initial_sleep_ms > 0:
            self.script.insert(0, Sleep(self.config.initial_sleep_ms))

        self.summary.catalog_size = len(self.catalog)
        self.summary.actions = len(self.script)

        result = GenerationResult(
            version=self.version,
            catalog=self.catalog,
            script=self.script,
            summary=self.summary,
            player_entity_id=self.player.entity_id,
        )
        result.validate()
        return result


class ScriptGenerator:
    """
    Generates a packet catalog and action script from captured frames.

    Only clientbound frames become catalog entries and Write/Queue actions;
    serverbound frames are used for timing only. WaitFor actions are derived
    from the config's wait-after table.
    """

    def __init__(self, config: Optional[GenerationConfig] = None, debug: bool = False):
        """
        Initialize the script generator.

        Args:
            config: Packet tables and timing heuristics (default: empty tables)
            debug: Enable debug logging
        """
        self.config = config if config is not None else MINIMAL_CONFIG

        # Set up logging
        self.logger = logging.getLogger("packetreplay.generator.pipeline")
        level = logging.DEBUG if debug else logging.INFO

        # Configure logging only if not already configured
        if not self.logger.handlers:
            logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
            self.logger.setLevel(level)

    def generate(self, frames: Iterable[PacketFrame], version: str = "") -> GenerationResult:
        """
        Generate the catalog and script for a sequence of frames.

        Args:
            frames: Frames in capture order
            version: Protocol version the frames were captured with

        Returns:
            GenerationResult with catalog, script and summary counters
        """
        run = _GenerationRun(self.config, self.logger, version)
        for frame in frames:
            run.feed(frame)
        result = run.finish()

        summary = result.summary
        self.logger.info(
            f"Processed {summary.total} packets, {summary.skipped} skipped, "
            f"{summary.duplicates} duplicate content, {summary.failed} undecodable, "
            f"{summary.catalog_size} unique for output"
        )
        self.logger.info(f"Sequence: {summary.actions} actions")

        if not any(action.references() is not None for action in result.script):
            self.logger.warning("Generated action script sends no packets")

        return result

    def generate_from_reader(self, reader) -> GenerationResult:
        """Generate from an open PacketDumpReader, scanning it to completion."""
        return self.generate(reader, version=reader.version)
