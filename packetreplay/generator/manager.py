"""
Generation manager module.

This module provides a central manager that turns one packet dump file into a
replay artifact: it opens the dump, runs the generation pipeline and writes
the catalog and script.
"""

import os
import logging
from typing import List, Optional

from packetreplay.codec import FrameCodec
from packetreplay.dump.reader import PacketDumpReader
from packetreplay.generator.artifact import ArtifactWriter
from packetreplay.generator.config import MINIMAL_CONFIG, GenerationConfig
from packetreplay.generator.pipeline import ScriptGenerator
from packetreplay.models import GenerationResult


class GenerationManager:
    """
    Manager for generating replay artifacts from dump files.

    This class coordinates the dump reader, the script generator and the
    artifact writer.
    """

    def __init__(
        self,
        dump_file: str,
        output_dir: str = "./replay",
        config: Optional[GenerationConfig] = None,
        codec: Optional[FrameCodec] = None,
        template_dir: Optional[str] = None,
        dry_run: bool = False,
        debug: bool = False,
    ):
        """
        Initialize the generation manager.

        Args:
            dump_file: Path to the input dump file
            output_dir: Directory to write the artifact to
            config: Generation config (default: empty tables)
            codec: Frame codec (default: looked up from the dump header)
            template_dir: Directory containing custom templates (optional)
            dry_run: Generate but do not write any files
            debug: Enable debug logging

        Raises:
            FileNotFoundError: If the dump_file doesn't exist
            ValueError: If output_dir exists but is not a directory
        """
        # Verify input file exists
        if not os.path.exists(dump_file):
            raise FileNotFoundError(f"Dump file not found: {dump_file}")

        # Verify output directory is valid
        if os.path.exists(output_dir) and not os.path.isdir(output_dir):
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.dump_file = dump_file
        self.output_dir = output_dir
        self.config = config if config is not None else MINIMAL_CONFIG
        self.codec = codec
        self.dry_run = dry_run
        self.debug = debug
        self.planned_files: List[str] = []

        # Set up logging
        self.logger = logging.getLogger("packetreplay.generator.manager")
        level = logging.DEBUG if debug else logging.INFO
        logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
        self.logger.setLevel(level)

        self.generator = ScriptGenerator(self.config, debug=debug)
        self.writer = ArtifactWriter(output_dir, template_dir=template_dir, debug=debug)

    def run(self) -> GenerationResult:
        """
        Generate the artifact for the dump file.

        This method:
        1. Opens the dump and parses its header (fatal on a corrupt header)
        2. Runs the generation pipeline over every frame
        3. Writes the packet catalog, manifest and script (unless dry_run)

        Returns:
            The GenerationResult

        Raises:
            DumpFormatError: If the dump header is missing or corrupt
            ValueError: If no codec is available for the dump's protocol version
            OSError: If there are issues writing the artifact
        """
        self.logger.info(f"Reading dump file: {self.dump_file}")

        with PacketDumpReader(self.dump_file, codec=self.codec, debug=self.debug) as reader:
            self.logger.info(f"Protocol version: {reader.version}")
            result = self.generator.generate_from_reader(reader)

        if self.dry_run:
            self.planned_files = self.writer.plan(result)
            self.logger.info(f"Dry run - would generate {len(self.planned_files)} files in {self.output_dir}")
            return result

        self.writer.write(result, source=os.path.basename(self.dump_file))
        return result
