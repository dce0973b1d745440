"""Settings for exporting layout snapshots."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .errors import ConfigError

ENV_PREFIX = "LAYOUT_DIFF_"
DEFAULT_PATH = "./storage_layout"


@dataclass
class ExportConfig:
    path: str = DEFAULT_PATH
    clear: bool = False
    flat: bool = False
    only: List[str] = field(default_factory=list)
    except_: List[str] = field(default_factory=list)
    spacing: int = 2

    def __post_init__(self) -> None:
        if self.spacing < 0:
            raise ConfigError(f"spacing must be non-negative, got {self.spacing}")
        for pattern in self.only + self.except_:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ConfigError(f"invalid contract filter {pattern!r}: {exc}") from exc

    def output_directory(self, root: Path) -> Path:
        """Resolve ``path`` against ``root``; it must lie strictly inside it."""
        root = root.resolve()
        out = (root / self.path).resolve()
        if out == root:
            raise ConfigError("resolved path must not be root directory")
        if root not in out.parents:
            raise ConfigError("resolved path must be inside of project directory")
        return out

    def selects(self, ident: str) -> bool:
        if self.only and not any(re.search(p, ident) for p in self.only):
            return False
        if self.except_ and any(re.search(p, ident) for p in self.except_):
            return False
        return True
