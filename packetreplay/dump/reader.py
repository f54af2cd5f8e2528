"""
Packet dump reader.

This module provides sequential access to a binary dump written by
PacketDumpWriter. Frames come back in write order with their raw bytes and,
when the frame codec understands them, the decoded name and params.
"""

import os
import logging
from typing import Iterator, Optional

from packetreplay.codec import FrameCodec, get_codec
from packetreplay.dump.format import (
    DIRECTION_TAGS,
    RECORD_PREFIX_SIZE,
    DumpHeader,
    DumpRecord,
)
from packetreplay.exceptions import DumpFormatError
from packetreplay.models import PacketFrame


class PacketDumpReader:
    """Reads frames from a packet dump file."""

    def __init__(self, filename: str, codec: Optional[FrameCodec] = None, debug: bool = False):
        """
        Open a dump file and parse its header.

        Args:
            filename: Path to the dump file
            codec: Frame codec to decode frames with (default: looked up from the header version)
            debug: Enable debug logging

        Raises:
            FileNotFoundError: If the dump file doesn't exist
            DumpFormatError: If the header is missing or corrupt
            ValueError: If no codec is available for the recorded version
        """
        if not os.path.exists(filename):
            raise FileNotFoundError(f"Dump file not found: {filename}")

        # Set up logging
        self.logger = logging.getLogger("packetreplay.dump.reader")
        level = logging.DEBUG if debug else logging.INFO

        # Configure logging only if not already configured
        if not self.logger.handlers:
            logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
            self.logger.setLevel(level)

        self.filename = filename
        self.frames_read = 0
        self.decode_failures = 0
        self._exhausted = False
        self._file = open(filename, "rb")

        try:
            self.version = self._read_header()
            self.codec = codec if codec is not None else get_codec(self.version)
        except Exception:
            self._file.close()
            raise

        self.logger.debug(f"Opened {filename} (protocol version {self.version})")

    def _read_header(self) -> str:
        length = self._file.read(1)
        if not length:
            raise DumpFormatError(f"Missing dump header: {self.filename} is empty")
        if length[0] == 0:
            raise DumpFormatError(f"Corrupt dump header in {self.filename}: empty protocol version")
        if length[0] & 0x80:
            raise DumpFormatError(f"Corrupt dump header in {self.filename}: invalid version length")

        body = self._file.read(length[0])
        if len(body) < length[0]:
            raise DumpFormatError(f"Corrupt dump header in {self.filename}: truncated protocol version")

        header = DumpHeader(length + body)
        try:
            return header.protocol_version.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DumpFormatError(f"Corrupt dump header in {self.filename}: {e}") from e

    def can_read(self) -> bool:
        """Return True while a complete record remains unread."""
        if self._exhausted or self._file.closed:
            return False
        position = self._file.tell()
        remaining = os.fstat(self._file.fileno()).st_size - position
        if remaining < RECORD_PREFIX_SIZE:
            return False

        prefix = self._file.read(RECORD_PREFIX_SIZE)
        self._file.seek(position)
        return remaining >= RECORD_PREFIX_SIZE + DumpRecord(prefix).frame_len

    def read(self) -> Optional[PacketFrame]:
        """
        Read the next frame.

        Returns:
            The next PacketFrame, or None at the end of the stream. A frame the
            codec cannot decode is returned with name and params set to None.
        """
        if self._exhausted or self._file.closed:
            return None

        prefix = self._file.read(RECORD_PREFIX_SIZE)
        if not prefix:
            self._exhausted = True
            return None
        if len(prefix) < RECORD_PREFIX_SIZE:
            self.logger.warning(f"Truncated record header after {self.frames_read} frames, stopping")
            self._exhausted = True
            return None

        frame_len = DumpRecord(prefix).frame_len
        frame = self._file.read(frame_len)
        if len(frame) < frame_len:
            self.logger.warning(
                f"Truncated frame after {self.frames_read} frames "
                f"({len(frame)} of {frame_len} bytes), stopping"
            )
            self._exhausted = True
            return None

        record = DumpRecord(prefix + frame)
        direction = DIRECTION_TAGS.get(record.tag)
        if direction is None:
            self.logger.error(f"Unknown direction tag 0x{record.tag:02x} after {self.frames_read} frames, stopping")
            self._exhausted = True
            return None

        name = None
        params = None
        try:
            name, params = self.codec.decode(record.frame)
        except Exception as e:
            self.decode_failures += 1
            self.logger.debug(f"Cannot decode frame #{self.frames_read} ({len(record.frame)} bytes): {e}")
            name, params = None, None
        else:
            self.codec.observe(name, params)

        self.frames_read += 1
        return PacketFrame(
            direction=direction,
            timestamp_ms=record.timestamp_ms,
            name=name,
            params=params,
            raw=bytes(record.frame),
        )

    def __iter__(self) -> Iterator[PacketFrame]:
        while True:
            frame = self.read()
            if frame is None:
                return
            yield frame

    def close(self) -> None:
        self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
