"""
Live capture recorder.

Attaches a PacketDumpWriter to a live connection: packets received from the
peer are recorded as serverbound frames, packets sent to it as clientbound
frames. Each packet is encoded through the frame codec first.
"""

import logging
from typing import Any

from packetreplay.codec import FrameCodec
from packetreplay.dump.writer import PacketDumpWriter
from packetreplay.replay.connection import CLOSE_EVENT, PACKET_EVENT, SENT_EVENT, ReplayConnection


class DumpRecorder:
    """Records the traffic of one connection into a dump file."""

    def __init__(
        self,
        connection: ReplayConnection,
        writer: PacketDumpWriter,
        codec: FrameCodec,
        close_writer: bool = True,
        debug: bool = False,
    ):
        """
        Args:
            connection: Connection to observe
            writer: Writer receiving the frames
            codec: Codec used to encode observed packets
            close_writer: Close the writer when the connection closes
            debug: Enable debug logging
        """
        self.logger = logging.getLogger("packetreplay.dump.recorder")
        level = logging.DEBUG if debug else logging.INFO

        # Configure logging only if not already configured
        if not self.logger.handlers:
            logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
            self.logger.setLevel(level)

        self.connection = connection
        self.writer = writer
        self.codec = codec
        self.close_writer = close_writer
        self.encode_failures = 0
        self.attached = False

    def attach(self) -> "DumpRecorder":
        if not self.attached:
            self.connection.on(PACKET_EVENT, self._on_serverbound)
            self.connection.on(SENT_EVENT, self._on_clientbound)
            self.connection.on(CLOSE_EVENT, self._on_close)
            self.attached = True
        return self

    def detach(self) -> None:
        if self.attached:
            self.connection.remove_listener(PACKET_EVENT, self._on_serverbound)
            self.connection.remove_listener(SENT_EVENT, self._on_clientbound)
            self.connection.remove_listener(CLOSE_EVENT, self._on_close)
            self.attached = False

    def _encode(self, name: str, params: Any):
        try:
            return self.codec.encode(name, params)
        except Exception as e:
            self.encode_failures += 1
            self.logger.warning(f"Not recording '{name}': {e}")
            return None

    def _on_serverbound(self, name: str, params: Any) -> None:
        raw = self._encode(name, params)
        if raw is not None:
            self.writer.write_serverbound(raw)

    def _on_clientbound(self, name: str, params: Any, immediate: bool) -> None:
        raw = self._encode(name, params)
        if raw is not None:
            self.writer.write_clientbound(raw)

    def _on_close(self, reason) -> None:
        self.logger.info(
            f"Connection closed, {self.writer.frames_written} frames recorded to {self.writer.filename}"
        )
        self.detach()
        if self.close_writer:
            self.writer.close()
