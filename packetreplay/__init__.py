"""
packetreplay: Turn game-protocol packet captures into replayable server scripts.

Captured sessions are stored in a compact dump format, distilled into a
deduplicated packet catalog plus an ordered action script, and replayed
against clients under test with per-session packet data.
"""

from packetreplay.codec import SUPPORTED_CODECS, get_codec, register_codec
from packetreplay.dump import PacketDumpReader, PacketDumpWriter
from packetreplay.generator import GENERATION_PROFILES, GenerationConfig, GenerationManager, ScriptGenerator
from packetreplay.replay import MockConnection, PacketData, ReplayExecutor, ReplaySession

__version__ = "0.1.0"

__all__ = [
    'SUPPORTED_CODECS',
    'get_codec',
    'register_codec',
    'PacketDumpReader',
    'PacketDumpWriter',
    'GENERATION_PROFILES',
    'GenerationConfig',
    'GenerationManager',
    'ScriptGenerator',
    'MockConnection',
    'PacketData',
    'ReplayExecutor',
    'ReplaySession',
]
