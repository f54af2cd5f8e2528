"""
Replay executor module.

A ReplaySession walks one action script against one live connection. Every
session owns its instruction pointer, its pending waits and its PacketData, so
any number of sessions can share one read-only catalog on the same event loop.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from packetreplay.codec import FrameCodec, get_codec
from packetreplay.exceptions import ConnectionClosedError, ReplayTimeoutError
from packetreplay.generator.artifact import ArtifactLoader, ReplayArtifact
from packetreplay.models import Action, LevelChunks, Queue, Sleep, WaitFor, Write
from packetreplay.replay.connection import CLOSE_EVENT, PACKET_EVENT, ReplayConnection
from packetreplay.replay.data import InventoryLayout, PacketData
from packetreplay.replay.terrain import SubchunkResponder, TerrainProfile


class ReplaySession:
    """Executes an action script against one connection."""

    def __init__(
        self,
        connection: ReplayConnection,
        data: PacketData,
        script: Sequence[Action],
        wait_timeout: float = 30.0,
        terrain: Optional[TerrainProfile] = None,
        respond_subchunks: bool = True,
        debug: bool = False,
    ):
        """
        Initialize the session.

        Args:
            connection: Connection of the client under test
            data: Session-local packet data
            script: Action script to execute
            wait_timeout: Seconds a WaitFor may block before the session fails
            terrain: Terrain profile for LevelChunks and sub-chunk answers
            respond_subchunks: Answer sub-chunk requests while running
            debug: Enable debug logging
        """
        if wait_timeout <= 0:
            raise ValueError(f"wait_timeout must be positive, got {wait_timeout}")

        self.connection = connection
        self.data = data
        self.script = list(script)
        self.wait_timeout = wait_timeout
        self.terrain = terrain if terrain is not None else TerrainProfile()
        self.responder = SubchunkResponder(connection, self.terrain) if respond_subchunks else None

        self.position = 0
        self.done = False
        self.running = False
        self.sent = 0

        self._arrivals: Dict[str, int] = defaultdict(int)
        self._waiters: Dict[str, List[asyncio.Future]] = {}
        self._stopped: Optional[asyncio.Event] = None
        self._stop_reason: Optional[str] = None

        # Set up logging
        self.logger = logging.getLogger("packetreplay.replay.executor")
        level = logging.DEBUG if debug else logging.INFO

        # Configure logging only if not already configured
        if not self.logger.handlers:
            logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
            self.logger.setLevel(level)

    async def run(self) -> int:
        """
        Execute the script from the current position to the end.

        Returns:
            Number of packets sent

        Raises:
            ReplayTimeoutError: If a WaitFor action times out
            ConnectionClosedError: If the peer disconnects or the session is aborted
        """
        if self.running:
            raise RuntimeError("Replay session is already running")

        self.running = True
        self._stopped = asyncio.Event()
        self.connection.on(PACKET_EVENT, self._on_packet)
        self.connection.on(CLOSE_EVENT, self._on_close)
        if self.responder is not None:
            self.responder.install()

        try:
            if self.connection.closed:
                self._stop(f"peer disconnected: {self.connection.close_reason or 'no reason'}")
            if self._stop_reason is not None:
                raise ConnectionClosedError(self._stop_reason)

            while self.position < len(self.script):
                await self._execute(self.script[self.position])
                self.position += 1
            self.done = True
            self.logger.info(f"Replay finished: {len(self.script)} actions, {self.sent} packets sent")
        except (ReplayTimeoutError, ConnectionClosedError) as e:
            self.logger.error(f"Replay failed at action #{self.position}: {e}")
            raise
        finally:
            self.running = False
            self.connection.remove_listener(PACKET_EVENT, self._on_packet)
            self.connection.remove_listener(CLOSE_EVENT, self._on_close)
            if self.responder is not None:
                self.responder.uninstall()
            for waiters in self._waiters.values():
                for future in waiters:
                    if not future.done():
                        future.cancel()
            self._waiters.clear()

        return self.sent

    def abort(self, reason: str = "aborted") -> None:
        """Stop the session, releasing any pending wait or sleep."""
        self._stop(reason)

    def _stop(self, reason: str) -> None:
        if self._stop_reason is None:
            self._stop_reason = reason
        if self._stopped is not None:
            self._stopped.set()
        for waiters in self._waiters.values():
            for future in waiters:
                if not future.done():
                    future.set_exception(ConnectionClosedError(self._stop_reason))

    def _on_close(self, reason: Optional[str]) -> None:
        self._stop(f"peer disconnected: {reason or 'no reason'}")

    def _on_packet(self, name: str, params: Any) -> None:
        for future in self._waiters.get(name, ()):
            if not future.done():
                future.set_result(params)
                return
        self._arrivals[name] += 1

    async def _execute(self, action: Action) -> None:
        if isinstance(action, Write):
            self._send(action.export_name, immediate=True)
            await asyncio.sleep(0)
        elif isinstance(action, Queue):
            self._send(action.export_name, immediate=False)
            await asyncio.sleep(0)
        elif isinstance(action, WaitFor):
            await self._wait_for(action.packet_name)
        elif isinstance(action, Sleep):
            await self._sleep(action.ms)
        elif isinstance(action, LevelChunks):
            self._level_chunks(action.distance)
            await asyncio.sleep(0)
        else:
            raise ValueError(f"Unsupported action: {action!r}")

    def _send(self, export_name: str, immediate: bool) -> None:
        name = self.data.source_name(export_name)
        params = self.data.params(export_name)
        if immediate:
            self.connection.write(name, params)
        else:
            self.connection.queue(name, params)
        self.sent += 1
        self.logger.debug(f"[SEND] #{self.position} {export_name} as {name} ({'write' if immediate else 'queue'})")

    async def _wait_for(self, name: str) -> None:
        if self._arrivals[name] > 0:
            self._arrivals[name] -= 1
            self.logger.debug(f"[WAIT] #{self.position} {name} already arrived")
            return
        if self._stop_reason is not None:
            raise ConnectionClosedError(self._stop_reason)

        self.logger.debug(f"[WAIT] #{self.position} waiting for {name}")
        future = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(name, []).append(future)
        try:
            await asyncio.wait_for(future, timeout=self.wait_timeout)
        except asyncio.TimeoutError:
            raise ReplayTimeoutError(name, self.wait_timeout, self.position) from None
        finally:
            waiters = self._waiters.get(name)
            if waiters is not None and future in waiters:
                waiters.remove(future)
                if not waiters:
                    del self._waiters[name]

    async def _sleep(self, ms: int) -> None:
        if self._stop_reason is not None:
            raise ConnectionClosedError(self._stop_reason)
        self.logger.debug(f"[SLEEP] #{self.position} {ms}ms")
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=ms / 1000)
        except asyncio.TimeoutError:
            return
        raise ConnectionClosedError(self._stop_reason)

    def _level_chunks(self, distance: int) -> None:
        count = 0
        for params in self.terrain.level_chunks(distance):
            self.connection.queue(self.terrain.level_chunk_packet, params)
            count += 1
        self.sent += count
        self.logger.debug(f"[CHUNKS] #{self.position} queued {count} level chunks (distance {distance})")


class ReplayExecutor:
    """
    Creates replay sessions from one shared artifact.

    The catalog and script are shared read-only; every session gets its own
    PacketData so per-session mutations stay isolated.
    """

    def __init__(
        self,
        artifact: ReplayArtifact,
        codec: Optional[FrameCodec] = None,
        wait_timeout: float = 30.0,
        terrain: Optional[TerrainProfile] = None,
        layout: Optional[InventoryLayout] = None,
        debug: bool = False,
    ):
        self.artifact = artifact
        self.wait_timeout = wait_timeout
        self.terrain = terrain
        self.layout = layout
        self.debug = debug
        self.logger = logging.getLogger("packetreplay.replay.executor")

        if codec is None and any(entry.is_binary for entry in artifact.catalog.values()):
            try:
                codec = get_codec(artifact.version)
            except ValueError as e:
                self.logger.warning(f"Binary entries cannot be decoded: {e}")
        self.codec = codec

    @classmethod
    def from_directory(cls, artifact_dir: str, **kwargs) -> "ReplayExecutor":
        """Load an artifact written by the generator."""
        return cls(ArtifactLoader(artifact_dir).load(), **kwargs)

    def packet_data(self) -> PacketData:
        return PacketData(self.artifact.catalog, codec=self.codec, layout=self.layout)

    def session(self, connection: ReplayConnection, data: Optional[PacketData] = None) -> ReplaySession:
        """Create a session for ``connection`` (with fresh PacketData unless given)."""
        return ReplaySession(
            connection,
            data if data is not None else self.packet_data(),
            self.artifact.script,
            wait_timeout=self.wait_timeout,
            terrain=self.terrain,
            debug=self.debug,
        )

    async def replay(self, connection: ReplayConnection, data: Optional[PacketData] = None) -> int:
        return await self.session(connection, data).run()
