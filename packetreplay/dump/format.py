"""
Binary dump file layout.

    header : u8 version_len | version (utf-8)
    record : u8 tag ('C' | 'S') | i64 timestamp_ms | u32 frame_len | frame

All integers are little endian. Both structures are declared as scapy layers so
reader and writer share one definition of the format.
"""

from scapy.fields import ByteEnumField, FieldLenField, LEFieldLenField, LESignedLongField, StrLenField
from scapy.packet import Packet

from packetreplay.models import CLIENTBOUND, SERVERBOUND

TAG_CLIENTBOUND = ord(CLIENTBOUND)
TAG_SERVERBOUND = ord(SERVERBOUND)

DIRECTION_TAGS = {
    TAG_CLIENTBOUND: CLIENTBOUND,
    TAG_SERVERBOUND: SERVERBOUND,
}

# tag + timestamp + frame length
RECORD_PREFIX_SIZE = 1 + 8 + 4

MAX_VERSION_LENGTH = 127


class DumpHeader(Packet):
    name = "DumpHeader"
    fields_desc = [
        FieldLenField("version_len", None, length_of="protocol_version", fmt="B"),
        StrLenField("protocol_version", b"", length_from=lambda pkt: pkt.version_len),
    ]


class DumpRecord(Packet):
    name = "DumpRecord"
    fields_desc = [
        ByteEnumField("tag", TAG_CLIENTBOUND, {TAG_CLIENTBOUND: "clientbound", TAG_SERVERBOUND: "serverbound"}),
        LESignedLongField("timestamp_ms", 0),
        LEFieldLenField("frame_len", None, length_of="frame", fmt="<I"),
        StrLenField("frame", b"", length_from=lambda pkt: pkt.frame_len),
    ]


def build_header(version: str) -> bytes:
    """Serialize a dump header for a protocol version."""
    encoded = version.encode("utf-8")
    if not encoded:
        raise ValueError("Protocol version must not be empty")
    if len(encoded) > MAX_VERSION_LENGTH:
        raise ValueError(f"Protocol version is longer than {MAX_VERSION_LENGTH} bytes: {version!r}")
    return bytes(DumpHeader(protocol_version=encoded))


def build_record(direction: str, timestamp_ms: int, frame: bytes) -> bytes:
    """Serialize one dump record."""
    return bytes(DumpRecord(tag=ord(direction), timestamp_ms=timestamp_ms, frame=frame))
