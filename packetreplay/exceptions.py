"""
Exception types for packetreplay.

Load-time and per-frame problems derive from ValueError, replay-time failures
from RuntimeError, so callers that already catch the builtin types keep working.
"""


class DumpFormatError(ValueError):
    """Raised when a dump file has a missing or corrupt header."""


class CodecError(ValueError):
    """Raised by a frame codec when bytes cannot be decoded (or params encoded)."""


class ArtifactError(ValueError):
    """Raised when a generated catalog/script artifact is inconsistent."""


class ReplayError(RuntimeError):
    """Base class for failures that abort a replay session."""


class ReplayTimeoutError(ReplayError):
    """A WaitFor action did not observe its packet in time."""

    def __init__(self, packet_name: str, timeout: float, position: int = -1):
        self.packet_name = packet_name
        self.timeout = timeout
        self.position = position
        super().__init__(
            f"Timed out after {timeout:.1f}s waiting for '{packet_name}' "
            f"(action #{position})"
        )


class ConnectionClosedError(ReplayError):
    """The peer disconnected (or the session was aborted) during replay."""
