"""
Alignment of two collated layouts.

Each aligned slot pair is swept with two pointers over byte segments of
both sides. Every slot side is first made byte-complete: padding between
entries, and the tail up to the wider side's reservation, become unnamed
segments. The sweep emits one unit per overlap, so the units of a slot tile
``[0, max(reserved_a, reserved_b))`` exactly.

Units are compared on the variable name and on the type label with array
lengths stripped (``uint8[2]`` and ``uint8[5]`` both read ``uint8[]``).
Sizes and offsets are not compared.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .collate import Slot, SlotEntry
from .errors import StructuralMismatchError
from .layout import SLOT_SIZE, TypeDescriptor

logger = logging.getLogger(__name__)

_ARRAY_LENGTH = re.compile(r"\[\d*\]")


def normalize_type_label(label: Optional[str]) -> str:
    return _ARRAY_LENGTH.sub("[]", label or "")


# ──────────────────────────────────────────────
# Slot-level alignment
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class UnitSide:
    """What one layout holds at a merged unit: a slot entry, or padding (``type is None``)."""

    name: str
    type: Optional[TypeDescriptor]
    offset: int
    size: int
    filled: int = 0

    @property
    def end(self) -> int:
        return self.offset + self.size

    @property
    def type_label(self) -> str:
        return self.type.label if self.type is not None else ""

    @property
    def is_padding(self) -> bool:
        return self.type is None

    @classmethod
    def of(cls, entry: SlotEntry) -> "UnitSide":
        return cls(entry.name, entry.type, entry.offset, entry.size, entry.filled)

    @classmethod
    def padding(cls, start: int, end: int) -> "UnitSide":
        return cls("", None, start, end - start)


def entries_equal(a: UnitSide | SlotEntry, b: UnitSide | SlotEntry) -> bool:
    la = a.type.label if a.type is not None else ""
    lb = b.type.label if b.type is not None else ""
    return a.name == b.name and normalize_type_label(la) == normalize_type_label(lb)


@dataclass(frozen=True)
class MergedUnit:
    slot_index: int
    start: int
    end: int
    side_a: UnitSide
    side_b: UnitSide
    changed: bool

    @property
    def global_start(self) -> int:
        return self.slot_index * SLOT_SIZE + self.start

    @property
    def global_end(self) -> int:
        return self.slot_index * SLOT_SIZE + self.end


@dataclass(frozen=True)
class MergedSlot:
    index: int
    reserved_a: int
    reserved_b: int
    filled_a: int
    filled_b: int
    units: Tuple[MergedUnit, ...]

    @property
    def changed(self) -> bool:
        return any(u.changed for u in self.units)


def _segments(slot: Slot, width: int) -> List[UnitSide]:
    """The entries of ``slot`` with padding inserted so they tile ``[0, width)``."""
    out: List[UnitSide] = []
    cursor = 0
    for entry in slot.entries:
        if entry.offset > cursor:
            out.append(UnitSide.padding(cursor, entry.offset))
        out.append(UnitSide.of(entry))
        cursor = entry.end
    if cursor < width:
        out.append(UnitSide.padding(cursor, width))
    return out


def align_slot_pair(slot_a: Slot, slot_b: Slot) -> MergedSlot:
    if slot_a.index != slot_b.index:
        raise StructuralMismatchError(f"slot index mismatch: {slot_a.index} != {slot_b.index}")

    width = max(slot_a.reserved, slot_b.reserved)
    seg_a = _segments(slot_a, width)
    seg_b = _segments(slot_b, width)

    units: List[MergedUnit] = []
    i = j = 0
    start = 0
    while i < len(seg_a) and j < len(seg_b):
        a, b = seg_a[i], seg_b[j]
        end = min(a.end, b.end)
        units.append(MergedUnit(slot_a.index, start, end, a, b, not entries_equal(a, b)))
        start = end
        # both advance when the segments close on the same byte
        if a.end <= b.end:
            i += 1
        if b.end <= a.end:
            j += 1

    return MergedSlot(
        index=slot_a.index,
        reserved_a=slot_a.reserved,
        reserved_b=slot_b.reserved,
        filled_a=slot_a.filled,
        filled_b=slot_b.filled,
        units=tuple(units),
    )


def _pad_slots(slots: Sequence[Slot], longer: Sequence[Slot]) -> List[Slot]:
    """Extend ``slots`` with empty slots numbered like the tail of ``longer``."""
    return list(slots) + [Slot(s.index, 0, 0) for s in longer[len(slots):]]


def align_slots(slots_a: Sequence[Slot], slots_b: Sequence[Slot], pad: bool = False) -> List[MergedSlot]:
    """
    Align two slot sequences slot by slot.

    With ``pad`` the shorter sequence is extended with empty slots; otherwise
    differing lengths raise :class:`StructuralMismatchError`.
    """
    if len(slots_a) != len(slots_b):
        if not pad:
            raise StructuralMismatchError(
                f"slot count mismatch: {len(slots_a)} != {len(slots_b)}"
            )
        logger.debug("padding layouts to %d slots", max(len(slots_a), len(slots_b)))
        slots_a, slots_b = _pad_slots(slots_a, slots_b), _pad_slots(slots_b, slots_a)

    return [align_slot_pair(a, b) for a, b in zip(slots_a, slots_b)]


def merge_slots(slots_a: Sequence[Slot], slots_b: Sequence[Slot], pad: bool = False) -> List[MergedUnit]:
    return [u for merged in align_slots(slots_a, slots_b, pad=pad) for u in merged.units]


# ──────────────────────────────────────────────
# Byte-global alignment
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class Interval:
    """A half-open byte range ``[start, end)`` over the whole storage space."""

    start: int
    end: int
    name: str = ""
    type_label: str = ""
    slot: Optional[int] = None
    offset: Optional[int] = None

    @property
    def is_gap(self) -> bool:
        return self.slot is None


@dataclass(frozen=True)
class MergedInterval:
    start: int
    end: int
    a: Interval
    b: Interval
    changed: bool


def flatten_slots(slots: Iterable[Slot]) -> List[Interval]:
    """Byte intervals of every entry, with gap intervals wherever bytes go undeclared."""
    out: List[Interval] = []
    for slot in slots:
        for entry in slot.entries:
            start = slot.index * SLOT_SIZE + entry.offset
            if out and start > out[-1].end:
                out.append(Interval(out[-1].end, start))
            out.append(Interval(start, start + entry.size, entry.name, entry.type.label, slot.index, entry.offset))
    return out


def _intervals_equal(a: Interval, b: Interval) -> bool:
    return a.name == b.name and normalize_type_label(a.type_label) == normalize_type_label(b.type_label)


def merge_intervals(intervals_a: Sequence[Interval], intervals_b: Sequence[Interval]) -> List[MergedInterval]:
    if not intervals_a or not intervals_b:
        raise StructuralMismatchError("cannot merge an empty layout in the byte-global view")

    lo = min(intervals_a[0].start, intervals_b[0].start)
    hi = max(intervals_a[-1].end, intervals_b[-1].end)

    def complete(intervals: Sequence[Interval]) -> List[Interval]:
        out = list(intervals)
        if out[0].start > lo:
            out.insert(0, Interval(lo, out[0].start))
        if out[-1].end < hi:
            out.append(Interval(out[-1].end, hi))
        return out

    seq_a, seq_b = complete(intervals_a), complete(intervals_b)

    merged: List[MergedInterval] = []
    i = j = 0
    start = lo
    while i < len(seq_a) and j < len(seq_b):
        a, b = seq_a[i], seq_b[j]
        end = min(a.end, b.end)
        merged.append(MergedInterval(start, end, a, b, not _intervals_equal(a, b)))
        start = end
        if a.end <= b.end:
            i += 1
        if b.end <= a.end:
            j += 1
    return merged
