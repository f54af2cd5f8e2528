"""
Replay package for packetreplay.

This package drives a generated action script against live connections.
"""

from packetreplay.replay.connection import MockConnection, ReplayConnection, SentPacket
from packetreplay.replay.data import InventoryLayout, PacketData
from packetreplay.replay.terrain import SubchunkResponder, TerrainProfile, spiral_coordinates
from packetreplay.replay.executor import ReplayExecutor, ReplaySession
from packetreplay.replay.dump_player import DumpPlayer

__all__ = [
    'MockConnection',
    'ReplayConnection',
    'SentPacket',
    'InventoryLayout',
    'PacketData',
    'SubchunkResponder',
    'TerrainProfile',
    'spiral_coordinates',
    'ReplayExecutor',
    'ReplaySession',
    'DumpPlayer',
]
