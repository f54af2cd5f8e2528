"""
Packet dump writer.

Appends observed frames to a dump file. Every record is flushed as soon as it
is written so that a capture interrupted at any point still leaves a readable
file.
"""

import os
import time
import logging
from typing import Optional

from packetreplay.dump.format import build_header, build_record
from packetreplay.models import CLIENTBOUND, DIRECTIONS, SERVERBOUND


class PacketDumpWriter:
    """Writes frames to a packet dump file."""

    def __init__(self, filename: str, version: str, debug: bool = False):
        """
        Create the dump file and write its header.

        Args:
            filename: Path of the dump file to create (parent directories are created)
            version: Protocol version recorded in the header
            debug: Enable debug logging

        Raises:
            ValueError: If the version cannot be stored in the header
            OSError: If the file cannot be created
        """
        self.logger = logging.getLogger("packetreplay.dump.writer")
        level = logging.DEBUG if debug else logging.INFO

        # Configure logging only if not already configured
        if not self.logger.handlers:
            logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
            self.logger.setLevel(level)

        header = build_header(version)

        directory = os.path.dirname(filename)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.filename = filename
        self.version = version
        self.frames_written = 0
        self._start = time.monotonic()
        self._file = open(filename, "wb")
        self._file.write(header)
        self._file.flush()

        self.logger.debug(f"Writing dump to {filename} (protocol version {version})")

    def elapsed_ms(self) -> int:
        """Milliseconds since the writer was opened."""
        return int(round((time.monotonic() - self._start) * 1000))

    def write(self, direction: str, raw: bytes, timestamp_ms: Optional[int] = None) -> None:
        """
        Append one frame.

        Args:
            direction: CLIENTBOUND or SERVERBOUND
            raw: Exact wire bytes of the frame
            timestamp_ms: Capture-relative timestamp (default: time since open)
        """
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction: {direction!r}")
        if timestamp_ms is None:
            timestamp_ms = self.elapsed_ms()

        self._file.write(build_record(direction, timestamp_ms, bytes(raw)))
        self._file.flush()
        self.frames_written += 1

    def write_clientbound(self, raw: bytes, timestamp_ms: Optional[int] = None) -> None:
        self.write(CLIENTBOUND, raw, timestamp_ms)

    def write_serverbound(self, raw: bytes, timestamp_ms: Optional[int] = None) -> None:
        self.write(SERVERBOUND, raw, timestamp_ms)

    def flush(self) -> None:
        self._file.flush()

    def close(self) -> None:
        if not self._file.closed:
            self._file.flush()
            self._file.close()
            self.logger.debug(f"Closed {self.filename} after {self.frames_written} frames")

    @property
    def closed(self) -> bool:
        return self._file.closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
