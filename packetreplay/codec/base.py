"""
Base frame codec interface.

This module defines the abstract base class for all frame codecs. A codec turns
one raw wire frame into a ``(name, params)`` pair for a given protocol version
and back again.
"""

from abc import ABC, abstractmethod
from typing import Any, Tuple


class FrameCodec(ABC):
    """Abstract base class for frame codecs."""

    def __init__(self, version: str):
        self.version = version

    @abstractmethod
    def decode(self, raw: bytes) -> Tuple[str, Any]:
        """
        Decode a single wire frame.

        Args:
            raw: The exact bytes of one frame

        Returns:
            Tuple of (packet name, decoded params)

        Raises:
            CodecError: If the frame cannot be decoded
        """
        pass

    @abstractmethod
    def encode(self, name: str, params: Any) -> bytes:
        """
        Encode a named packet into wire bytes.

        Args:
            name: Protocol packet name
            params: Structured packet params

        Returns:
            The encoded frame

        Raises:
            CodecError: If the params cannot be encoded
        """
        pass

    def observe(self, name: str, params: Any) -> None:
        """
        Hook called with every frame decoded from a capture, in order.

        Stateful codecs use it to learn per-capture variables that later
        frames depend on. The default implementation does nothing.
        """
        return None

    def normalize(self, name: str, params: Any) -> Any:
        """Round-trip params through the wire format."""
        _, decoded = self.decode(self.encode(name, params))
        return decoded
