"""Reconstruct and diff the slot layout of contract storage."""

from .align import (
    Interval,
    MergedInterval,
    MergedSlot,
    MergedUnit,
    UnitSide,
    align_slots,
    entries_equal,
    flatten_slots,
    merge_intervals,
    merge_slots,
    normalize_type_label,
)
from .collate import Slot, SlotEntry, collate, collate_layout
from .errors import (
    ConfigError,
    InputUnavailableError,
    LayoutError,
    ResolutionError,
    StructuralMismatchError,
)
from .layout import (
    Declaration,
    Encoding,
    StorageLayout,
    TypeDescriptor,
    TypeTable,
    load_layout,
    loads_layout,
)

__version__ = "0.2.0"
