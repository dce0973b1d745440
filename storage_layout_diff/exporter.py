"""Write layout snapshots for later `check` runs."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict, List

from .config import ExportConfig
from .layout import StorageLayout, dump_layout


def destination(out_dir: Path, ident: str, flat: bool) -> Path:
    """`src/Vault.sol:Vault` → `<out>/src/Vault.sol/Vault.json` (or `<out>/Vault.json` when flat)."""
    source, _, name = ident.rpartition(":")
    if flat or not source:
        return out_dir / f"{name}.json"
    return out_dir / source / f"{name}.json"


def export_layouts(layouts: Dict[str, StorageLayout], config: ExportConfig, root: Path) -> List[Path]:
    out_dir = config.output_directory(root)

    if config.clear and out_dir.exists():
        shutil.rmtree(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    written: List[Path] = []
    for ident in sorted(layouts):
        layout = layouts[ident]
        if not config.selects(ident) or not layout.storage:
            continue
        dest = destination(out_dir, ident, config.flat)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dump_layout(layout, dest, config.spacing)
        written.append(dest)
    return written
