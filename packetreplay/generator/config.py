"""
Generation configuration.

All packet tables used by the generation pipeline live in a GenerationConfig
value passed to the pipeline explicitly, so differently configured runs (for
example two protocol versions) never interfere with each other.
"""

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, FrozenSet, Optional, Tuple


@dataclass(frozen=True)
class GenerationConfig:
    """Packet tables and timing heuristics for one generation run."""

    # Never enter the catalog or the script
    skip_packets: FrozenSet[str] = frozenset()
    # Only the first occurrence is kept
    unique_only_packets: FrozenSet[str] = frozenset()
    # Entity-scoped packets kept only for the tracked player
    player_entity_packets: FrozenSet[str] = frozenset()
    player_entity_fields: Tuple[str, ...] = ("runtime_entity_id", "runtime_id")
    player_handshake_packet: Optional[str] = None
    player_handshake_field: str = "runtime_entity_id"
    # (trigger packet, serverbound packet to wait for after sending it) pairs;
    # a mapping is accepted and stored as pairs
    wait_after: Tuple[Tuple[str, str], ...] = ()
    loading_screen_packet: Optional[str] = None
    # Sent unbatched; everything else is queued
    write_packets: FrozenSet[str] = frozenset()
    # Stored as raw blobs instead of structured params
    binary_packets: FrozenSet[str] = frozenset()
    sleep_threshold_ms: int = 15
    sleep_granularity_ms: int = 10
    initial_sleep_ms: int = 0
    level_chunks_after: Optional[str] = None
    level_chunks_distance: int = 6

    def __post_init__(self):
        object.__setattr__(self, "wait_after", tuple(dict(self.wait_after).items()))
        if self.sleep_granularity_ms <= 0:
            raise ValueError(f"sleep_granularity_ms must be positive: {self.sleep_granularity_ms}")
        if self.sleep_threshold_ms < 0:
            raise ValueError(f"sleep_threshold_ms must not be negative: {self.sleep_threshold_ms}")
        if self.initial_sleep_ms < 0:
            raise ValueError(f"initial_sleep_ms must not be negative: {self.initial_sleep_ms}")
        if self.level_chunks_distance < 0:
            raise ValueError(f"level_chunks_distance must not be negative: {self.level_chunks_distance}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationConfig":
        """
        Build a config from plain data (lists instead of sets).

        Raises:
            ValueError: If the data contains unknown keys
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown generation config keys: {', '.join(sorted(unknown))}")

        values = {}
        for key, value in data.items():
            if key.endswith("_packets"):
                value = frozenset(value)
            elif key == "player_entity_fields":
                value = tuple(value)
            values[key] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if key == "wait_after":
                data[key] = dict(value)
            elif isinstance(value, (frozenset, set)):
                data[key] = sorted(value)
            elif isinstance(value, tuple):
                data[key] = list(value)
        return data

    def response_for(self, name: str) -> Optional[str]:
        """Packet to wait for after sending ``name``, if any."""
        for trigger, response in self.wait_after:
            if trigger == name:
                return response
        return None

    def with_overrides(self, **overrides) -> "GenerationConfig":
        """Copy of this config with the given non-None values replaced."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


MINIMAL_CONFIG = GenerationConfig()

# Tables observed in a Bedrock 1.21.130 login capture
BEDROCK_CONFIG = GenerationConfig(
    skip_packets=frozenset({
        "level_chunk",
        "sub_chunk",
        "subchunk",
        "update_block",
        "add_entity",
        "add_item_entity",
        "client_cache_blob_status",
        "client_cache_miss_response",
        "player_auth_input",
        "move_entity_data",
        "move_entity_delta",
        "set_actor_data",
        "network_stack_latency",
        "tick_sync",
        "server_to_client_handshake",
    }),
    unique_only_packets=frozenset({
        "network_chunk_publisher_update",
        "current_structure_feature",
    }),
    player_entity_packets=frozenset({
        "set_entity_data",
        "sync_entity_property",
    }),
    player_handshake_packet="start_game",
    wait_after={
        "resource_packs_info": "resource_pack_client_response",
        "resource_pack_stack": "resource_pack_client_response",
        "available_commands": "serverbound_loading_screen",
    },
    loading_screen_packet="serverbound_loading_screen",
    write_packets=frozenset({
        "resource_packs_info",
        "resource_pack_stack",
    }),
    binary_packets=frozenset({
        "biome_definition_list",
        "available_entity_identifiers",
        "available_commands",
        "crafting_data",
        "creative_content",
        "item_registry",
        "jigsaw_structure_data",
        "player_list",
        "unlocked_recipes",
    }),
    initial_sleep_ms=200,
    level_chunks_after="update_attributes_2",
    level_chunks_distance=6,
)

GENERATION_PROFILES: Dict[str, GenerationConfig] = {
    "minimal": MINIMAL_CONFIG,
    "bedrock": BEDROCK_CONFIG,
}


def load_config(path: str, base: Optional[GenerationConfig] = None) -> GenerationConfig:
    """
    Load a JSON config file, layering its keys over ``base``.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not valid JSON or has unknown keys
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")

    if base is not None:
        merged = base.to_dict()
        merged.update(data)
        data = merged
    return GenerationConfig.from_dict(data)
