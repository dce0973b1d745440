"""
Text rendering of collated and merged layouts.

The visualization column shows a slot right to left (byte 31 first):
``▰`` marks bytes holding the entry's content, ``▱`` other bytes reserved
in the slot, and a blank bytes nothing has claimed.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Sequence

from colorama import Fore, Style

from .align import MergedInterval, MergedSlot, MergedUnit, UnitSide
from .collate import Slot, SlotEntry
from .layout import SLOT_SIZE

FILLED = "▰"
PLACEHOLDER = "▱"
EMPTY = " "

_ANSI = re.compile(r"\x1b\[[0-9;]*m")

SLOT_HEADERS = ["slot", "offset", "type", "name", "visualization (right to left)"]
INTERVAL_HEADERS = ["bytes", "type", "name"]


def strip_ansi(text: str) -> str:
    return _ANSI.sub("", text)


def _paint(color: str, text: Any) -> str:
    return f"{color}{text}{Style.RESET_ALL}"


def _glyphs(offset: int, filled: int, reserved: int) -> List[str]:
    out = []
    for pos in reversed(range(SLOT_SIZE)):
        if offset <= pos < offset + filled:
            out.append(FILLED)
        elif pos < reserved:
            out.append(PLACEHOLDER)
        else:
            out.append(EMPTY)
    return out


def visualize_slot(entry: SlotEntry | UnitSide, reserved: int) -> str:
    return "".join(_glyphs(entry.offset, entry.filled, reserved))


def visualize_unit(unit: MergedUnit, merged: MergedSlot) -> str:
    a = _glyphs(unit.side_a.offset, unit.side_a.filled, merged.reserved_a)
    b = _glyphs(unit.side_b.offset, unit.side_b.filled, merged.reserved_b)
    out = []
    for ca, cb in zip(a, b):
        if ca == cb:
            out.append(_paint(Fore.MAGENTA, ca) if ca == FILLED else ca)
        elif FILLED in (ca, cb):
            out.append(_paint(Fore.RED, FILLED))
        else:
            # one side reserved, the other untouched
            out.append(PLACEHOLDER)
    return "".join(out)


def _table(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    cells = [[str(c) for c in headers]] + [[str(c) for c in row] for row in rows]
    widths = [max(len(strip_ansi(r[i])) for r in cells) for i in range(len(headers))]

    def line(row: Sequence[str]) -> str:
        padded = [c + " " * (w - len(strip_ansi(c))) for c, w in zip(row, widths)]
        return " |  " + "  |  ".join(padded) + "  |"

    rule = " ·" + "|".join("-" * (w + 4) for w in widths) + "·"
    out = [rule, line(cells[0]), rule]
    out.extend(line(r) for r in cells[1:])
    out.append(rule)
    return "\n".join(out)


def _pair(a: Any, b: Any) -> str:
    if a == b:
        return str(a)
    return f"{_paint(Fore.RED, a)} => {_paint(Fore.GREEN, b)}"


# ──────────────────────────────────────────────
# Tables
# ──────────────────────────────────────────────
def render_slots(slots: Sequence[Slot]) -> str:
    rows = []
    for slot in slots:
        for entry in slot.entries:
            rows.append([slot.index, entry.offset, entry.type.label, entry.name,
                         visualize_slot(entry, slot.reserved)])
    return _table(SLOT_HEADERS, rows)


def render_merged(merged: Sequence[MergedSlot], only_changed: bool = False) -> str:
    rows = []
    for slot in merged:
        for unit in slot.units:
            if only_changed and not unit.changed:
                continue
            a, b = unit.side_a, unit.side_b
            rows.append([
                slot.index,
                _pair(a.offset, b.offset),
                _pair(a.type_label, b.type_label),
                _pair(a.name, b.name),
                visualize_unit(unit, slot),
            ])
    return _table(SLOT_HEADERS, rows)


def render_intervals(merged: Sequence[MergedInterval], only_changed: bool = False) -> str:
    rows = []
    for m in merged:
        if only_changed and not m.changed:
            continue
        rows.append([
            f"{m.start}-{m.end - 1}",
            _pair(m.a.type_label, m.b.type_label),
            _pair(m.a.name, m.b.name),
        ])
    return _table(INTERVAL_HEADERS, rows)


# ──────────────────────────────────────────────
# JSON
# ──────────────────────────────────────────────
def _side_json(side: UnitSide) -> Dict[str, Any]:
    return {"name": side.name, "type": side.type_label, "offset": side.offset, "size": side.size}


def slots_to_json(slots: Sequence[Slot]) -> List[Dict[str, Any]]:
    # slot indices may exceed 2**53, keep them as strings
    return [
        {
            "slot": str(s.index),
            "reserved": s.reserved,
            "filled": s.filled,
            "entries": [
                {"name": e.name, "type": e.type.label, "offset": e.offset, "size": e.size, "filled": e.filled}
                for e in s.entries
            ],
        }
        for s in slots
    ]


def merged_to_json(merged: Sequence[MergedSlot]) -> List[Dict[str, Any]]:
    return [
        {
            "slot": str(s.index),
            "reservedA": s.reserved_a,
            "reservedB": s.reserved_b,
            "filledA": s.filled_a,
            "filledB": s.filled_b,
            "units": [
                {
                    "start": u.start,
                    "end": u.end,
                    "a": _side_json(u.side_a),
                    "b": _side_json(u.side_b),
                    "changed": u.changed,
                }
                for u in s.units
            ],
        }
        for s in merged
    ]


def intervals_to_json(merged: Sequence[MergedInterval]) -> List[Dict[str, Any]]:
    return [
        {
            "start": str(m.start),
            "end": str(m.end),
            "a": {"name": m.a.name, "type": m.a.type_label},
            "b": {"name": m.b.name, "type": m.b.type_label},
            "changed": m.changed,
        }
        for m in merged
    ]
