"""
Reference JSON frame codec.

Frames are a scapy layer holding a length-prefixed packet name followed by a
JSON body. It is the codec used by the test suite and by tools that record
traffic of runtimes which already speak structured packets.
"""

import json
from typing import Any, Tuple

from scapy.fields import FieldLenField, StrField, StrLenField
from scapy.packet import Packet

from packetreplay.codec.base import FrameCodec
from packetreplay.exceptions import CodecError
from packetreplay.serialization import dumps_params, loads_params


class JsonFrame(Packet):
    """u8 name length | name | JSON body."""

    name = "JsonFrame"
    fields_desc = [
        FieldLenField("name_len", None, length_of="packet_name", fmt="B"),
        StrLenField("packet_name", b"", length_from=lambda pkt: pkt.name_len),
        StrField("body", b""),
    ]


class JsonFrameCodec(FrameCodec):
    """Codec for JsonFrame encoded packets."""

    def decode(self, raw: bytes) -> Tuple[str, Any]:
        """Decode a JsonFrame."""
        if not raw:
            raise CodecError("Empty frame")
        if raw[0] == 0 or raw[0] + 1 > len(raw):
            raise CodecError(f"Invalid packet name length {raw[0]} for a {len(raw)} byte frame")

        frame = JsonFrame(raw)
        try:
            name = frame.packet_name.decode("utf-8")
            params = loads_params(frame.body.decode("utf-8")) if frame.body else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CodecError(f"Cannot decode frame: {e}") from e

        return name, params

    def encode(self, name: str, params: Any) -> bytes:
        """Encode a packet as a JsonFrame."""
        encoded_name = name.encode("utf-8")
        if not encoded_name or len(encoded_name) > 255:
            raise CodecError(f"Packet name must be 1-255 bytes: {name!r}")
        try:
            body = dumps_params(params).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise CodecError(f"Cannot encode params for '{name}': {e}") from e

        return bytes(JsonFrame(packet_name=encoded_name, body=body))
