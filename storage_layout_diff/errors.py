"""Errors raised while loading, collating and aligning storage layouts."""

from __future__ import annotations


class LayoutError(Exception):
    """Base class for every error this package reports to its caller."""


class ResolutionError(LayoutError):
    """A declaration references a type that cannot be resolved."""

    def __init__(self, type_id: str, reason: str = "no matching entry in the type table") -> None:
        self.type_id = type_id
        super().__init__(f"cannot resolve type {type_id!r}: {reason}")


class StructuralMismatchError(LayoutError):
    """Two layouts cannot be aligned without misrepresenting one of them."""


class InputUnavailableError(LayoutError):
    """A layout source is missing, unreadable or not a storage layout document."""


class ConfigError(LayoutError):
    """Invalid configuration values."""
