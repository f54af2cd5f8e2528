"""
Live connection handles used by the replay executor.

A connection is the server side of one connected client: ``write``/``queue``
send packets to the client, and packets arriving from the client are delivered
through ``receive`` as events keyed by packet name.
"""

import time
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from packetreplay.codec import FrameCodec
from packetreplay.exceptions import ConnectionClosedError

PACKET_EVENT = "packet"
SENT_EVENT = "sent"
CLOSE_EVENT = "close"

AutoResponder = Callable[[Any], Optional[Tuple[str, Any]]]


class ReplayConnection(ABC):
    """
    Base class for connection handles.

    Events:
        <packet name> (params): a packet arrived from the peer
        "packet" (name, params): any packet arrived from the peer
        "sent" (name, params, immediate): a packet was handed to the transport
        "close" (reason): the connection was closed
    """

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = defaultdict(list)
        self._once_wrappers: Dict[Tuple[str, Callable], Callable] = {}
        self.closed = False
        self.close_reason: Optional[str] = None

    # Event hub

    def on(self, event: str, callback: Callable) -> Callable:
        self._listeners[event].append(callback)
        return callback

    def once(self, event: str, callback: Callable) -> Callable:
        def wrapper(*args):
            self.remove_listener(event, callback)
            return callback(*args)

        self._once_wrappers[(event, callback)] = wrapper
        return self.on(event, wrapper)

    def remove_listener(self, event: str, callback: Callable) -> None:
        wrapper = self._once_wrappers.pop((event, callback), None)
        target = wrapper if wrapper is not None else callback
        listeners = self._listeners.get(event)
        if listeners and target in listeners:
            listeners.remove(target)
        if listeners is not None and not listeners:
            del self._listeners[event]

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args) -> bool:
        listeners = list(self._listeners.get(event, ()))
        for callback in listeners:
            callback(*args)
        return bool(listeners)

    # Transport side

    def receive(self, name: str, params: Any) -> None:
        """Deliver a packet that arrived from the peer."""
        if self.closed:
            return
        self.emit(name, params)
        self.emit(PACKET_EVENT, name, params)

    def close(self, reason: Optional[str] = None) -> None:
        if self.closed:
            return
        self.closed = True
        self.close_reason = reason
        self.emit(CLOSE_EVENT, reason)

    # Sending

    def write(self, name: str, params: Any) -> None:
        """Send a packet immediately, bypassing batching."""
        self._checked_send(name, params, immediate=True)

    def queue(self, name: str, params: Any) -> None:
        """Send a packet through the batching layer."""
        self._checked_send(name, params, immediate=False)

    def _checked_send(self, name: str, params: Any, immediate: bool) -> None:
        if self.closed:
            raise ConnectionClosedError(f"Cannot send '{name}': connection closed ({self.close_reason or 'no reason'})")
        self._send(name, params, immediate)
        self.emit(SENT_EVENT, name, params, immediate)

    @abstractmethod
    def _send(self, name: str, params: Any, immediate: bool) -> None:
        """Hand one packet to the transport."""
        pass


@dataclass
class SentPacket:
    name: str
    params: Any
    immediate: bool
    timestamp: float


class MockConnection(ReplayConnection):
    """
    Network-free connection for tests.

    Captures every sent packet, lets tests inject packets from the peer and can
    answer sent packets automatically, standing in for the client side.
    """

    def __init__(self, codec: Optional[FrameCodec] = None, validate: bool = False, debug: bool = False):
        super().__init__()
        self.logger = logging.getLogger("packetreplay.replay.connection")
        level = logging.DEBUG if debug else logging.INFO

        # Configure logging only if not already configured
        if not self.logger.handlers:
            logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
            self.logger.setLevel(level)

        if validate and codec is None:
            raise ValueError("Packet validation needs a codec")
        self.codec = codec
        self.validate = validate
        self.sent_packets: List[SentPacket] = []
        self.queued_packets: List[SentPacket] = []
        self._auto_responders: Dict[str, AutoResponder] = {}

    def _send(self, name: str, params: Any, immediate: bool) -> None:
        if self.validate:
            params = self.codec.normalize(name, params)

        packet = SentPacket(name=name, params=params, immediate=immediate, timestamp=time.time())
        self.sent_packets.append(packet)
        if not immediate:
            self.queued_packets.append(packet)

    def _checked_send(self, name: str, params: Any, immediate: bool) -> None:
        super()._checked_send(name, params, immediate)
        # Replies follow the "sent" event of their trigger
        self._handle_auto_responder(name, self.sent_packets[-1].params)

    def inject(self, name: str, params: Any = None) -> None:
        """Inject a packet as if the peer had sent it."""
        self.receive(name, {} if params is None else params)

    def set_auto_responder(self, name: str, handler: AutoResponder) -> None:
        """Answer every sent packet called ``name`` with ``handler(params)``."""
        self._auto_responders[name] = handler

    def remove_auto_responder(self, name: str) -> None:
        self._auto_responders.pop(name, None)

    def _handle_auto_responder(self, name: str, params: Any) -> None:
        handler = self._auto_responders.get(name)
        if handler is None:
            return
        response = handler(params)
        if response is None:
            return
        response_name, response_params = response
        self.logger.debug(f"Auto-responding to {name} with {response_name}")
        self.receive(response_name, response_params)

    def get_packets(self, name: Optional[str] = None) -> List[SentPacket]:
        """Sent packets, optionally filtered by name."""
        if name is None:
            return list(self.sent_packets)
        return [p for p in self.sent_packets if p.name == name]

    def sent_names(self) -> List[str]:
        return [p.name for p in self.sent_packets]

    def clear(self) -> None:
        self.sent_packets.clear()
        self.queued_packets.clear()
