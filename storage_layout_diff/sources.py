"""
Where layouts come from: JSON snapshots on disk, or a Foundry project
compiled at the current checkout or at any git reference.
"""

from __future__ import annotations

import contextlib
import json
import logging
import subprocess
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set

import git
import typer

from .errors import InputUnavailableError, LayoutError
from .layout import StorageLayout, load_layout, loads_layout

logger = logging.getLogger(__name__)

# List of path prefixes we ignore when gathering contracts
_IGNORE_PREFIXES = ("lib/", "test/", "script/")


# ──────────────────────────────────────────────
# Foundry
# ──────────────────────────────────────────────
def _run(cmd: List[str]) -> str:
    """Run `cmd`, return stdout, raise on non-zero exit."""
    try:
        res = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise InputUnavailableError(f"{cmd[0]} not found on PATH") from exc
    if res.returncode != 0:
        raise InputUnavailableError(f"{' '.join(cmd)} failed:\n{res.stderr.strip()}")
    return res.stdout.strip()


def build() -> None:
    _run(["forge", "clean", "--silent"])
    _run(["forge", "build", "--silent", "--skip", "test", "--skip", "script"])


def artifact_contract_ids(out_dir: Path = Path("out")) -> List[str]:
    """
    Scan `out/` for Foundry artifacts and return identifiers accepted by
    `forge inspect`, in the canonical `<relative-path>.sol:<Contract>` form.

    The logic works even when artifacts lack `sourcePath` / `sourceName`
    by reading the embedded solidity compiler metadata.

    Returns
    -------
    List[str]
        Ordered list without duplicates. Example:
        ["src/Test.sol:Test", "src/Vault.sol:Vault"]
    """
    seen: Set[str] = set()
    id_list: List[str] = []

    for art in sorted(out_dir.rglob("*.json")):
        # Skip debug and build-info blobs
        if art.name.endswith(".dbg.json") or "build-info" in art.parts:
            continue

        try:
            meta = json.loads(art.read_text())
        except (OSError, json.JSONDecodeError):
            logger.debug("skipping unreadable artifact %s", art)
            continue
        if not isinstance(meta, dict):
            continue

        # 1. Try legacy keys
        source = meta.get("sourcePath") or meta.get("sourceName")
        name = meta.get("contractName")

        # 2. Prefer metadata.settings.compilationTarget
        md = meta.get("metadata")
        if md:
            try:
                md_obj = json.loads(md) if isinstance(md, str) else md
            except json.JSONDecodeError:
                md_obj = {}  # keep any legacy data we already grabbed
            comp_target = md_obj.get("settings", {}).get("compilationTarget", {})
            if comp_target:
                # there should be exactly one entry
                source, name = next(iter(comp_target.items()))

        # 3. Derive from artefact path if still missing
        if not source and art.parent.name.endswith(".sol"):
            source = Path(*art.parent.relative_to(out_dir).parts).as_posix()
        if not name:
            name = art.stem

        if not source or not name:
            continue  # cannot form identifier

        ident = f"{source}:{name}"
        if any(ident.startswith(p) for p in _IGNORE_PREFIXES):
            continue
        if ident not in seen:
            seen.add(ident)
            id_list.append(ident)

    return id_list


def inspect_contract(ident: str) -> StorageLayout:
    raw = _run(["forge", "inspect", ident, "storageLayout", "--json"])
    if not raw:
        raise InputUnavailableError(f"no storage layout reported for {ident}")
    return loads_layout(raw)


# ──────────────────────────────────────────────
# Git
# ──────────────────────────────────────────────
def open_repo(path: Path = Path(".")) -> git.Repo:
    try:
        return git.Repo(path, search_parent_directories=True)
    except (git.InvalidGitRepositoryError, git.NoSuchPathError) as exc:
        raise InputUnavailableError(f"{path.resolve()} is not inside a git repository") from exc


def _update_submodules(repo: git.Repo) -> None:
    try:
        repo.git.submodule("update", "--init", "--recursive")
    except git.GitCommandError as exc:
        # projects without submodules
        logger.debug("submodule update failed: %s", exc)


@contextlib.contextmanager
def checked_out(repo: git.Repo, ref: str) -> Iterator[None]:
    """Check out `ref` (with submodules) for the duration of the block."""
    if repo.is_dirty(untracked_files=True):
        raise InputUnavailableError("Please commit or stash your changes first.")

    # restore the branch, not its commit, so HEAD is not left detached
    current = repo.head.commit.hexsha if repo.head.is_detached else repo.active_branch.name
    try:
        repo.git.checkout(ref)
    except git.GitCommandError as exc:
        raise InputUnavailableError(f"cannot check out {ref!r}: {exc.stderr.strip()}") from exc
    try:
        _update_submodules(repo)
        yield
    finally:
        repo.git.checkout(current)
        _update_submodules(repo)


def _read_at_ref(repo: git.Repo, path: Path, ref: str) -> str:
    rel = path.resolve().relative_to(Path(repo.working_tree_dir).resolve()).as_posix()
    try:
        return repo.git.show(f"{ref}:{rel}")
    except git.GitCommandError as exc:
        raise InputUnavailableError(f"{rel} not found at {ref}") from exc


# ──────────────────────────────────────────────
# Layout sources
# ──────────────────────────────────────────────
def is_snapshot(source: str) -> bool:
    return source.endswith(".json")


def load_source(source: str, ref: Optional[str] = None, rebuild: bool = True) -> StorageLayout:
    """
    Load a layout from a JSON snapshot path or a `path/File.sol:Contract` id.

    With `ref`, a snapshot is read from that revision and a contract is
    built and inspected with the revision checked out.
    """
    if is_snapshot(source):
        if ref is None:
            return load_layout(source)
        return loads_layout(_read_at_ref(open_repo(), Path(source), ref))

    if ref is None:
        if rebuild:
            build()
        return inspect_contract(source)

    with checked_out(open_repo(), ref):
        build()
        return inspect_contract(source)


def collect_layouts(repo: git.Repo, ref: str, include_paths: List[str] | None) -> Dict[str, StorageLayout]:
    """
    • checkout `ref`
    • compile with Foundry
    • return {contract → layout}
    """
    with checked_out(repo, ref):
        build()

        all_idents = artifact_contract_ids()
        if include_paths:
            all_idents = [i for i in all_idents if any(i.startswith(p) for p in include_paths)]

        total = len(all_idents)
        layouts: Dict[str, StorageLayout] = {}
        for idx, ident in enumerate(all_idents, 1):
            typer.echo(f"      [{idx}/{total}] {ident}", err=True)
            try:
                layout = inspect_contract(ident)
            except LayoutError as exc:
                logger.debug("skipping %s: %s", ident, exc)
                continue  # libraries / interfaces
            if layout.storage:
                layouts[ident] = layout

    return layouts
