"""
Data model shared by the dump, generator and replay packages.

Frames are produced by the dump reader, catalog entries and actions by the
generation pipeline; the replay executor only reads them.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional


CLIENTBOUND = "C"
SERVERBOUND = "S"

DIRECTIONS = (CLIENTBOUND, SERVERBOUND)


def opposite(direction: str) -> str:
    """Return the other direction tag."""
    if direction not in DIRECTIONS:
        raise ValueError(f"Unknown direction: {direction!r}")
    return SERVERBOUND if direction == CLIENTBOUND else CLIENTBOUND


@dataclass(frozen=True)
class PacketFrame:
    """One captured packet event."""

    direction: str
    timestamp_ms: int
    name: Optional[str]
    params: Any
    raw: bytes

    @property
    def decoded(self) -> bool:
        return self.name is not None

    @property
    def clientbound(self) -> bool:
        return self.direction == CLIENTBOUND


@dataclass
class CatalogEntry:
    """
    A canonical, deduplicated packet body.

    Structured entries carry ``params``; binary entries carry the exact
    ``raw`` bytes and are decoded through the frame codec when needed.
    """

    export_name: str
    source_name: str
    is_binary: bool = False
    params: Any = None
    raw: Optional[bytes] = None

    def __post_init__(self):
        if self.is_binary and self.raw is None:
            raise ValueError(f"Binary catalog entry '{self.export_name}' has no raw bytes")


class Action:
    """Base class of the replay script instructions."""

    kind = ""

    def references(self) -> Optional[str]:
        """Export name of the catalog entry used by this action, if any."""
        return None


@dataclass(frozen=True)
class Sleep(Action):
    ms: int
    kind = "sleep"


@dataclass(frozen=True)
class WaitFor(Action):
    packet_name: str
    kind = "wait_for"


@dataclass(frozen=True)
class Write(Action):
    export_name: str
    kind = "write"

    def references(self) -> Optional[str]:
        return self.export_name


@dataclass(frozen=True)
class Queue(Action):
    export_name: str
    kind = "queue"

    def references(self) -> Optional[str]:
        return self.export_name


@dataclass(frozen=True)
class LevelChunks(Action):
    distance: int
    kind = "level_chunks"


ACTION_TYPES = {cls.kind: cls for cls in (Sleep, WaitFor, Write, Queue, LevelChunks)}


def missing_references(script: Iterable[Action], catalog: Dict[str, CatalogEntry]) -> List[str]:
    """Return export names referenced by the script but absent from the catalog."""
    missing = []
    for action in script:
        ref = action.references()
        if ref is not None and ref not in catalog and ref not in missing:
            missing.append(ref)
    return missing


@dataclass
class GenerationSummary:
    """Counters aggregated over one generation run."""

    total: int = 0
    clientbound: int = 0
    serverbound: int = 0
    skipped: int = 0
    duplicates: int = 0
    failed: int = 0
    catalog_size: int = 0
    actions: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "clientbound": self.clientbound,
            "serverbound": self.serverbound,
            "skipped": self.skipped,
            "duplicates": self.duplicates,
            "failed": self.failed,
            "catalog_size": self.catalog_size,
            "actions": self.actions,
        }


@dataclass
class GenerationResult:
    """Catalog and action script produced from one dump."""

    version: str
    catalog: Dict[str, CatalogEntry] = field(default_factory=dict)
    script: List[Action] = field(default_factory=list)
    summary: GenerationSummary = field(default_factory=GenerationSummary)
    player_entity_id: Any = None

    def validate(self) -> None:
        """
        Check catalog/script referential integrity.

        Raises:
            ValueError: If an action references an unknown export name
        """
        missing = missing_references(self.script, self.catalog)
        if missing:
            raise ValueError(f"Script references unknown catalog entries: {', '.join(missing)}")

    def used_entries(self) -> List[CatalogEntry]:
        """Catalog entries referenced by at least one action, in catalog order."""
        used = {action.references() for action in self.script}
        return [entry for name, entry in self.catalog.items() if name in used]
