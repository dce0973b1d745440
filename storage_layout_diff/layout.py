"""
Storage layout documents as emitted by solc / ``forge inspect``.

A document has the shape ``{"storage": [...], "types": {...}}``. The
``storage`` list holds the top-level declarations in declaration order and
``types`` maps a type identifier (``t_uint256``, ``t_struct(Foo)12_storage``,
...) to its metadata. Both are read-only once loaded; collation and
alignment never touch them.
"""

from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .errors import InputUnavailableError, ResolutionError

SLOT_SIZE = 32

# `<base>[<N>]` – the element count of a fixed-size array is only present in its label
_FIXED_ARRAY_LABEL = re.compile(r".+\[(\d+)\]$")


class Encoding(str, enum.Enum):
    INPLACE = "inplace"
    MAPPING = "mapping"
    DYNAMIC_ARRAY = "dynamic_array"
    BYTES = "bytes"


# ──────────────────────────────────────────────
# Declarations
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class Declaration:
    """One storage variable (or struct member): a name and a type identifier."""

    name: str
    type: str
    slot: Optional[str] = None
    offset: Optional[int] = None
    contract: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_json(cls, item: Mapping[str, Any]) -> "Declaration":
        try:
            name = item["label"]
            type_id = item["type"]
        except (KeyError, TypeError) as exc:
            raise InputUnavailableError(f"malformed storage entry {item!r}") from exc
        slot = item.get("slot")
        offset = item.get("offset")
        if offset is not None:
            try:
                offset = int(offset)
            except (TypeError, ValueError) as exc:
                raise InputUnavailableError(f"malformed offset {offset!r} of {name!r}") from exc
        return cls(
            name=name,
            type=type_id,
            slot=None if slot is None else str(slot),
            offset=offset,
            contract=item.get("contract"),
            raw=dict(item),
        )

    def to_json(self) -> Dict[str, Any]:
        if self.raw:
            return dict(self.raw)
        out: Dict[str, Any] = {"label": self.name, "type": self.type}
        if self.contract is not None:
            out["contract"] = self.contract
        if self.offset is not None:
            out["offset"] = self.offset
        if self.slot is not None:
            out["slot"] = self.slot
        return out


# ──────────────────────────────────────────────
# Types
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class TypeDescriptor:
    """
    Metadata for one entry of the ``types`` map.

    Exactly one of ``members`` (struct) or ``base`` (array element type) is
    set on a composite ``inplace`` type. Dynamic arrays carry ``base`` as
    well but are never expanded: only their length word lives in the slot.
    """

    id: str
    label: str
    encoding: Encoding
    number_of_bytes: int
    base: Optional[str] = None
    members: Optional[Tuple[Declaration, ...]] = None
    key: Optional[str] = None
    value: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_json(cls, type_id: str, entry: Mapping[str, Any]) -> "TypeDescriptor":
        try:
            encoding = Encoding(entry["encoding"])
            label = entry["label"]
            number_of_bytes = int(entry["numberOfBytes"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ResolutionError(type_id, f"malformed type entry ({exc})") from exc

        members = entry.get("members")
        base = entry.get("base")
        if members is not None and base is not None:
            raise ResolutionError(type_id, "type has both members and an element type")
        if members is not None and encoding is not Encoding.INPLACE:
            raise ResolutionError(type_id, f"{encoding.value} type cannot have members")

        return cls(
            id=type_id,
            label=label,
            encoding=encoding,
            number_of_bytes=number_of_bytes,
            base=base,
            members=None if members is None else tuple(Declaration.from_json(m) for m in members),
            key=entry.get("key"),
            value=entry.get("value"),
            raw=dict(entry),
        )

    def to_json(self) -> Dict[str, Any]:
        if self.raw:
            return dict(self.raw)
        out: Dict[str, Any] = {
            "encoding": self.encoding.value,
            "label": self.label,
            "numberOfBytes": str(self.number_of_bytes),
        }
        if self.base is not None:
            out["base"] = self.base
        if self.key is not None:
            out["key"] = self.key
        if self.value is not None:
            out["value"] = self.value
        if self.members is not None:
            out["members"] = [m.to_json() for m in self.members]
        return out

    @property
    def is_struct(self) -> bool:
        return self.encoding is Encoding.INPLACE and self.members is not None

    @property
    def is_fixed_array(self) -> bool:
        return self.encoding is Encoding.INPLACE and self.base is not None

    @property
    def is_composite(self) -> bool:
        return self.is_struct or self.is_fixed_array

    @property
    def element_count(self) -> int:
        """Declared length of a fixed-size array, parsed from ``<base>[<N>]``."""
        m = _FIXED_ARRAY_LABEL.match(self.label)
        if not m:
            raise ResolutionError(self.id, f"label {self.label!r} is not of the form <base>[<N>]")
        return int(m.group(1))

    @property
    def slot_size(self) -> int:
        """Bytes reserved inline; mappings, dynamic arrays and bytes always claim a whole slot."""
        if self.encoding is Encoding.INPLACE:
            return self.number_of_bytes
        return SLOT_SIZE

    @property
    def fill_size(self) -> int:
        """Bytes of actual content stored inline."""
        if self.encoding is Encoding.MAPPING:
            return 0
        return self.slot_size


class TypeTable(Mapping[str, TypeDescriptor]):
    """Read-only lookup of type identifiers to :class:`TypeDescriptor`."""

    def __init__(self, descriptors: Mapping[str, TypeDescriptor] | None = None) -> None:
        self._types: Dict[str, TypeDescriptor] = dict(descriptors or {})

    @classmethod
    def from_json(cls, types: Mapping[str, Any] | None) -> "TypeTable":
        # solc emits `"types": null` for contracts without storage
        return cls({tid: TypeDescriptor.from_json(tid, entry) for tid, entry in (types or {}).items()})

    def resolve(self, type_id: str) -> TypeDescriptor:
        try:
            return self._types[type_id]
        except KeyError:
            raise ResolutionError(type_id) from None

    def __getitem__(self, type_id: str) -> TypeDescriptor:
        return self._types[type_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def to_json(self) -> Dict[str, Any]:
        return {tid: t.to_json() for tid, t in self._types.items()}


# ──────────────────────────────────────────────
# Documents
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class StorageLayout:
    storage: Tuple[Declaration, ...]
    types: TypeTable

    @classmethod
    def from_json(cls, data: Any) -> "StorageLayout":
        if not isinstance(data, dict) or "storage" not in data:
            raise InputUnavailableError("document is not a storage layout (missing 'storage')")
        items = data["storage"] or []
        if not isinstance(items, list):
            raise InputUnavailableError("'storage' must be a list")
        return cls(
            storage=tuple(Declaration.from_json(it) for it in items),
            types=TypeTable.from_json(data.get("types")),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "storage": [d.to_json() for d in self.storage],
            "types": self.types.to_json(),
        }

    @property
    def base_slot(self) -> int:
        """Slot of the first declaration as reported by the compiler (0 when unknown)."""
        if not self.storage or self.storage[0].slot is None:
            return 0
        first = self.storage[0]
        # decimal (leading zeros allowed) or 0x-prefixed hex
        text = first.slot.strip()
        try:
            return int(text, 16) if text.lower().startswith("0x") else int(text, 10)
        except ValueError:
            raise InputUnavailableError(f"malformed slot {first.slot!r} of {first.name!r}") from None


def loads_layout(text: str) -> StorageLayout:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InputUnavailableError(f"invalid JSON: {exc}") from exc
    return StorageLayout.from_json(data)


def load_layout(path: Path | str) -> StorageLayout:
    path = Path(path)
    try:
        text = path.read_text()
    except OSError as exc:
        raise InputUnavailableError(f"cannot read {path}: {exc.strerror}") from exc
    return loads_layout(text)


def dump_layout(layout: StorageLayout, path: Path | str, spacing: int = 2) -> None:
    Path(path).write_text(json.dumps(layout.to_json(), indent=spacing) + "\n")
