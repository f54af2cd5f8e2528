"""
Per-session packet data.

PacketData is the mutable view a replay session has of the shared, read-only
catalog. Params are materialised lazily (binary entries are decoded through
the frame codec) and copied, so tests can patch them before the script
reaches the action that sends them without affecting other sessions.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from packetreplay.codec import FrameCodec
from packetreplay.models import CatalogEntry

EMPTY_ITEM = {"network_id": 0}


@dataclass(frozen=True)
class InventoryLayout:
    """Which catalog entries carry the player's starting inventory."""

    inventory_export: str = "inventory_content"
    armor_export: str = "inventory_content_2"
    offhand_export: str = "inventory_content_4"
    items_field: str = "input"
    inventory_size: int = 36


class PacketData:
    """Session-local, mutable packet params backed by a shared catalog."""

    def __init__(
        self,
        catalog: Dict[str, CatalogEntry],
        codec: Optional[FrameCodec] = None,
        layout: Optional[InventoryLayout] = None,
    ):
        self.catalog = catalog
        self.codec = codec
        self.layout = layout if layout is not None else InventoryLayout()
        self.logger = logging.getLogger("packetreplay.replay.data")
        self._params: Dict[str, Any] = {}

    def __contains__(self, export_name: str) -> bool:
        return export_name in self.catalog

    def entry(self, export_name: str) -> CatalogEntry:
        try:
            return self.catalog[export_name]
        except KeyError:
            raise KeyError(f"Unknown catalog entry: {export_name}") from None

    def source_name(self, export_name: str) -> str:
        """Protocol packet name to send an entry as."""
        return self.entry(export_name).source_name

    def params(self, export_name: str) -> Any:
        """
        The session's params for an entry, materialised on first access.

        Raises:
            KeyError: If the entry doesn't exist
            ValueError: If a binary entry needs decoding but no codec is set
            CodecError: If the codec cannot decode a binary entry
        """
        if export_name not in self._params:
            self._params[export_name] = self._materialize(self.entry(export_name))
        return self._params[export_name]

    def _materialize(self, entry: CatalogEntry) -> Any:
        if not entry.is_binary:
            return copy.deepcopy(entry.params)

        if self.codec is None:
            raise ValueError(f"Binary catalog entry '{entry.export_name}' needs a frame codec")
        name, params = self.codec.decode(entry.raw)
        if name != entry.source_name:
            self.logger.warning(f"Binary entry '{entry.export_name}' decodes as '{name}', expected '{entry.source_name}'")
        return params

    def replace(self, export_name: str, params: Any) -> None:
        self.entry(export_name)
        self._params[export_name] = params

    def patch(self, export_name: str, func: Callable[[Any], Any]) -> Any:
        """
        Apply ``func`` to an entry's params.

        ``func`` may mutate the params in place and return None, or return a
        replacement value.
        """
        params = self.params(export_name)
        result = func(params)
        if result is not None:
            self._params[export_name] = result
        return self._params[export_name]

    def update(self, export_name: str, **fields) -> Dict[str, Any]:
        params = self.params(export_name)
        if not isinstance(params, dict):
            raise TypeError(f"Params of '{export_name}' are not a mapping")
        params.update(fields)
        return params

    def reset(self, export_name: Optional[str] = None) -> None:
        """Drop session changes for one entry, or for all of them."""
        if export_name is None:
            self._params.clear()
        else:
            self._params.pop(export_name, None)

    # Starting inventory helpers

    def _items(self, export_name: str, size: int = 0) -> list:
        params = self.params(export_name)
        items = params.get(self.layout.items_field) if isinstance(params, dict) else None
        if not isinstance(items, list):
            raise TypeError(f"'{export_name}' has no '{self.layout.items_field}' item list")
        while len(items) < size:
            items.append(dict(EMPTY_ITEM))
        return items

    def set_inventory_item(self, slot: int, item: Optional[Dict[str, Any]] = None) -> None:
        """Put ``item`` (None for empty) in a main inventory slot."""
        if not 0 <= slot < self.layout.inventory_size:
            raise IndexError(f"Inventory slot out of range: {slot}")
        items = self._items(self.layout.inventory_export, slot + 1)
        items[slot] = dict(EMPTY_ITEM) if item is None else item

    def clear_inventory(self) -> None:
        items = self._items(self.layout.inventory_export)
        items[:] = [dict(EMPTY_ITEM) for _ in range(self.layout.inventory_size)]

    def set_armor_slot(self, slot: int, item: Optional[Dict[str, Any]] = None) -> None:
        if slot < 0:
            raise IndexError(f"Armor slot out of range: {slot}")
        items = self._items(self.layout.armor_export, slot + 1)
        items[slot] = dict(EMPTY_ITEM) if item is None else item

    def set_offhand_slot(self, item: Optional[Dict[str, Any]] = None) -> None:
        items = self._items(self.layout.offhand_export, 1)
        items[0] = dict(EMPTY_ITEM) if item is None else item
