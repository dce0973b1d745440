"""
Slot collation.

Turns the flat declaration list of a storage layout into the sequence of
32-byte slots the compiler packs it into. Structs and fixed-size arrays are
expanded member by member (``parent.member`` / ``parent[i]``) into the same
slot sequence; once a composite is done its last slot is reserved in full,
so the next declaration always starts a fresh slot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from .layout import SLOT_SIZE, Declaration, StorageLayout, TypeDescriptor, TypeTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotEntry:
    name: str
    type: TypeDescriptor
    offset: int
    size: int
    filled: int

    @property
    def end(self) -> int:
        return self.offset + self.size


@dataclass(frozen=True)
class Slot:
    index: int
    reserved: int
    filled: int
    entries: Tuple[SlotEntry, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.reserved == 0


@dataclass
class _OpenSlot:
    index: int
    reserved: int = 0
    filled: int = 0
    entries: List[SlotEntry] = field(default_factory=list)

    def freeze(self) -> Slot:
        return Slot(self.index, self.reserved, self.filled, tuple(self.entries))


class SlotAccumulator:
    """
    Mutable slot sequence shared by every level of a collation.

    The cursor is always the last slot; the accumulator is handed explicitly
    to each recursive step so nested composites keep packing into it.
    """

    def __init__(self, start_slot: int = 0) -> None:
        self.start_slot = start_slot
        self.slots: List[_OpenSlot] = []

    @property
    def current(self) -> Optional[_OpenSlot]:
        return self.slots[-1] if self.slots else None

    def open_for(self, size: int) -> _OpenSlot:
        """Return the slot the next ``size`` bytes go into, opening a new one if needed."""
        slot = self.current
        if slot is None:
            slot = _OpenSlot(self.start_slot)
            self.slots.append(slot)
        elif slot.reserved > 0 and slot.reserved + size > SLOT_SIZE:
            slot = _OpenSlot(slot.index + 1)
            self.slots.append(slot)
        return slot

    def place(self, name: str, t: TypeDescriptor) -> SlotEntry:
        slot = self.open_for(t.slot_size)
        entry = SlotEntry(name=name, type=t, offset=slot.reserved, size=t.slot_size, filled=t.fill_size)
        slot.entries.append(entry)
        slot.reserved += entry.size
        slot.filled += entry.filled
        return entry

    def seal(self) -> None:
        """Reserve the remainder of the last slot."""
        slot = self.current
        if slot is not None:
            slot.reserved = SLOT_SIZE

    def freeze(self) -> List[Slot]:
        return [s.freeze() for s in self.slots]


def expand(decl: Declaration, t: TypeDescriptor) -> List[Declaration]:
    """Child declarations of a struct or fixed-size array, in storage order."""
    if t.members is not None:
        return [Declaration(name=f"{decl.name}.{m.name}", type=m.type) for m in t.members]
    return [Declaration(name=f"{decl.name}[{i}]", type=t.base) for i in range(t.element_count)]


def collate_into(acc: SlotAccumulator, declarations: Iterable[Declaration], types: TypeTable) -> None:
    for decl in declarations:
        t = types.resolve(decl.type)
        if t.is_composite:
            # composites span whole slots: starts a fresh one unless the current is empty
            acc.open_for(t.number_of_bytes)
            children = expand(decl, t)
            if not children:
                logger.debug("zero-length composite %s (%s) seals slot", decl.name, t.label)
            collate_into(acc, children, types)
            acc.seal()
        else:
            acc.place(decl.name, t)


def collate(declarations: Sequence[Declaration], types: TypeTable, start_slot: int = 0) -> List[Slot]:
    """
    Pack ``declarations`` into slots.

    Parameters
    ----------
    declarations
        Top-level declarations in declaration order.
    types
        Type table every declaration (and nested member) resolves through.
    start_slot
        Index of the first slot; non-zero for custom storage layouts.

    Raises
    ------
    ResolutionError
        A type id is missing from ``types`` or a fixed-array label is malformed.
    """
    acc = SlotAccumulator(start_slot)
    collate_into(acc, declarations, types)
    slots = acc.freeze()
    logger.debug("collated %d declarations into %d slots", len(declarations), len(slots))
    return slots


def collate_layout(layout: StorageLayout) -> List[Slot]:
    return collate(layout.storage, layout.types, layout.base_slot)
