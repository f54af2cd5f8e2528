"""
Frame codecs for packetreplay.

This module exports the codec interface and the registry used to find a codec
for the protocol version recorded in a dump header.
"""

from typing import Callable, Dict

from packetreplay.codec.base import FrameCodec
from packetreplay.codec.json_codec import JsonFrameCodec, JsonFrame

# Register supported codecs, keyed by version family
SUPPORTED_CODECS: Dict[str, Callable[[str], FrameCodec]] = {
    "json": JsonFrameCodec,
}


def register_codec(version: str, factory: Callable[[str], FrameCodec]) -> None:
    """
    Register a codec factory for an exact version or a version family.

    Args:
        version: Protocol version ("1.21.130") or family ("json")
        factory: Callable taking the full version string and returning a codec
    """
    SUPPORTED_CODECS[version] = factory


def get_codec(version: str) -> FrameCodec:
    """
    Create the codec for a protocol version.

    An exact match wins over the family, which is the part before the first "/".

    Raises:
        ValueError: If no codec is registered for the version
    """
    factory = SUPPORTED_CODECS.get(version)
    if factory is None:
        factory = SUPPORTED_CODECS.get(version.split("/", 1)[0])
    if factory is None:
        raise ValueError(f"No frame codec registered for protocol version: {version}")
    return factory(version)


__all__ = [
    'FrameCodec',
    'JsonFrame',
    'JsonFrameCodec',
    'SUPPORTED_CODECS',
    'get_codec',
    'register_codec',
]
