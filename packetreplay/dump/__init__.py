"""
Packet dump package for packetreplay.

This package provides the binary dump file format together with its reader,
writer and a recorder that captures a live connection.
"""

from packetreplay.dump.format import DumpHeader, DumpRecord
from packetreplay.dump.reader import PacketDumpReader
from packetreplay.dump.writer import PacketDumpWriter
from packetreplay.dump.recorder import DumpRecorder

__all__ = [
    'DumpHeader',
    'DumpRecord',
    'PacketDumpReader',
    'PacketDumpWriter',
    'DumpRecorder',
]
