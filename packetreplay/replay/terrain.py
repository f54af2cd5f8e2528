"""
Synthetic terrain for replay sessions.

Terrain is not replayed from the capture. A LevelChunks action streams flat
chunks around the origin, and sub-chunk requests from the client are answered
from a small table of fixed payloads.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Tuple

from packetreplay.replay.connection import ReplayConnection

# Flat world column
LEVEL_CHUNK_PAYLOAD = bytes.fromhex("0102010201020102ffffffffffffffffffffffffffffffffffffffff00")

# Keyed by sub-chunk dy
SUBCHUNK_PAYLOADS = {
    -4: bytes.fromhex("0901fc03") + bytes.fromhex("feff") * 256 + bytes.fromhex("04898c9ca501bdc7f7fc0f"),
    -3: bytes.fromhex("0901fd01bdc7f7fc0f"),
    -2: bytes.fromhex("0901fe01bdc7f7fc0f"),
    -1: bytes.fromhex("0901ff05") + bytes.fromhex("00000095") * 256 + bytes.fromhex("06bdc7f7fc0ff3c188db0f97ddf69c04"),
}


def spiral_coordinates(max_distance: int = 5) -> Iterator[Tuple[int, int]]:
    """
    Chunk coordinates ring by ring out to ``max_distance`` (Chebyshev).

    Within a ring, coordinates closer by Manhattan distance come first, and
    among those, ones offset along x before ones offset along z.
    """
    for dist in range(0, max_distance + 1):
        ring = [
            (x, z)
            for x in range(-dist, dist + 1)
            for z in range(-dist, dist + 1)
            if max(abs(x), abs(z)) == dist
        ]
        ring.sort(key=lambda c: (abs(c[0]) + abs(c[1]), abs(c[0]) + abs(c[1]) * 100))
        for coord in ring:
            yield coord


@dataclass(frozen=True)
class TerrainProfile:
    level_chunk_packet: str = "level_chunk"
    level_chunk_params: Dict[str, Any] = field(default_factory=lambda: {
        "dimension": 0,
        "sub_chunk_count": -2,
        "highest_subchunk_count": 3,
        "cache_enabled": False,
    })
    level_chunk_payload: bytes = LEVEL_CHUNK_PAYLOAD
    subchunk_request_packet: str = "subchunk_request"
    subchunk_packet: str = "subchunk"
    subchunk_payloads: Dict[int, bytes] = field(default_factory=lambda: dict(SUBCHUNK_PAYLOADS))

    def level_chunks(self, distance: int) -> Iterator[Dict[str, Any]]:
        """Params of every level chunk covering ``distance``."""
        for x, z in spiral_coordinates(distance):
            params = dict(self.level_chunk_params)
            params.update(x=x, z=z, payload=self.level_chunk_payload)
            yield params

    def subchunk_response(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Answer for one sub-chunk request packet."""
        entries = []
        for req in request.get("requests", []):
            payload = self.subchunk_payloads.get(req.get("dy"))
            entries.append({
                "dx": req.get("dx"),
                "dy": req.get("dy"),
                "dz": req.get("dz"),
                "heightmap_type": "too_high",
                "payload": payload if payload is not None else b"",
                "render_heightmap_type": "too_high",
                "result": "success" if payload is not None else "y_index_out_of_bounds",
            })
        return {
            "cache_enabled": False,
            "dimension": request.get("dimension", 0),
            "entries": entries,
            "origin": request.get("origin", {"x": 0, "y": 0, "z": 0}),
        }


class SubchunkResponder:
    """Answers sub-chunk requests on a connection while installed."""

    def __init__(self, connection: ReplayConnection, profile: TerrainProfile):
        self.connection = connection
        self.profile = profile
        self.responses = 0
        self.installed = False
        self.logger = logging.getLogger("packetreplay.replay.terrain")

    def install(self) -> None:
        if not self.installed:
            self.connection.on(self.profile.subchunk_request_packet, self._respond)
            self.installed = True

    def uninstall(self) -> None:
        if self.installed:
            self.connection.remove_listener(self.profile.subchunk_request_packet, self._respond)
            self.installed = False

    def _respond(self, params: Any) -> None:
        if not isinstance(params, dict):
            self.logger.warning(f"Ignoring malformed {self.profile.subchunk_request_packet}")
            return
        self.connection.write(self.profile.subchunk_packet, self.profile.subchunk_response(params))
        self.responses += 1
