"""
Dump playback.

DumpPlayer feeds the frames of a recorded dump into a connection as if they
arrived from the peer, keeping the recorded relative timing. It stands in for
the server when exercising client code against a capture.
"""

import asyncio
import logging
from typing import Iterable

from packetreplay.models import CLIENTBOUND, DIRECTIONS, PacketFrame
from packetreplay.replay.connection import ReplayConnection


class DumpPlayer:
    def __init__(
        self,
        frames: Iterable[PacketFrame],
        connection: ReplayConnection,
        direction: str = CLIENTBOUND,
        skip_delay: bool = False,
        debug: bool = False,
    ):
        """
        Initialize the player.

        Args:
            frames: Frames to play, usually a PacketDumpReader
            connection: Connection receiving the frames
            direction: Only frames in this direction are played
            skip_delay: Play as fast as possible instead of honouring timestamps
            debug: Enable debug logging
        """
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction: {direction!r}")

        self.frames = frames
        self.connection = connection
        self.direction = direction
        self.skip_delay = skip_delay
        self.skipped = 0

        self.logger = logging.getLogger("packetreplay.replay.dump_player")
        level = logging.DEBUG if debug else logging.INFO
        if not self.logger.handlers:
            logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
            self.logger.setLevel(level)

    async def play(self) -> int:
        """
        Deliver the frames through ``connection.receive``.

        Returns:
            Number of frames delivered
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        first_timestamp = None
        count = 0

        for frame in self.frames:
            if frame.direction != self.direction:
                continue
            if not frame.decoded:
                self.skipped += 1
                continue

            if first_timestamp is None:
                first_timestamp = frame.timestamp_ms
            delay = 0.0
            if not self.skip_delay:
                delay = (frame.timestamp_ms - first_timestamp) / 1000 - (loop.time() - started)
            await asyncio.sleep(max(delay, 0.0))

            if self.connection.closed:
                self.logger.info(f"Connection closed, stopping playback after {count} frames")
                break
            self.connection.receive(frame.name, frame.params)
            count += 1

        self.logger.info(f"Played {count} frames ({self.skipped} undecodable skipped)")
        return count
