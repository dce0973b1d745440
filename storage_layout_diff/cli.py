#! /usr/bin/env python3
"""
layout-diff
~~~~~~~~~~~

A CLI for inspecting and diffing the storage layouts of Foundry projects.

Usage
-----
    layout-diff inspect <SOURCE>
    layout-diff diff <A> <B> [--a-ref REF] [--b-ref REF]
    layout-diff check <SNAPSHOT.json> <SOURCE>
    layout-diff export
    layout-diff diff-refs <OLD_COMMIT> <NEW_COMMIT>

A SOURCE is either a JSON snapshot (`{storage, types}`) or a contract id
such as `src/Vault.sol:Vault`, which is compiled with `forge build` and
read with `forge inspect`. Layouts are packed into 32-byte slots and
aligned byte by byte; changed rows are printed red (old) / green (new).
"""

from __future__ import annotations

import contextlib
import json
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import typer
from colorama import init as colorama_init

from . import sources
from .align import align_slots, flatten_slots, merge_intervals
from .collate import collate_layout
from .config import DEFAULT_PATH, ENV_PREFIX, ExportConfig
from .errors import LayoutError
from .exporter import export_layouts
from .layout import StorageLayout, load_layout
from .render import (
    intervals_to_json,
    merged_to_json,
    render_intervals,
    render_merged,
    render_slots,
    slots_to_json,
)

# ──────────────────────────────────────────────
# CLI set-up
# ──────────────────────────────────────────────
app = typer.Typer(help="Inspect and diff storage layouts of Foundry contracts")
colorama_init()  # enable ANSI colours on Windows too


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────
@contextlib.contextmanager
def _reporting() -> Iterator[None]:
    """Turn layout errors into a red message and exit status 1."""
    try:
        yield
    except LayoutError as exc:
        typer.secho(f"❌  {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _load_pair(a: str, b: str, a_ref: Optional[str], b_ref: Optional[str]) -> Tuple[StorageLayout, StorageLayout]:
    pending = {"a": (a, a_ref), "b": (b, b_ref)}
    loaded = {}

    # ref-pinned sources rebuild `out/` at their revision, so they go first
    for key, (source, ref) in pending.items():
        if ref is not None or sources.is_snapshot(source):
            loaded[key] = sources.load_source(source, ref)

    # contracts read from the working tree share one build
    working = [key for key in pending if key not in loaded]
    if working:
        typer.echo("⏳  Building project …", err=True)
        sources.build()
        for key in working:
            loaded[key] = sources.load_source(pending[key][0], rebuild=False)

    return loaded["a"], loaded["b"]


def _echo_json(data: object) -> None:
    typer.echo(json.dumps(data, indent=2))


# ──────────────────────────────────────────────
# Commands
# ──────────────────────────────────────────────
@app.command()
def inspect(
    source: str = typer.Argument(..., help="JSON snapshot or contract id (path/File.sol:Contract)"),
    ref: Optional[str] = typer.Option(None, "--ref", help="git commit / tag / branch to read the source at"),
    as_json: bool = typer.Option(False, "--json", help="Print collated slots as JSON."),
) -> None:
    """Show how a contract's storage variables are packed into slots."""
    with _reporting():
        slots = collate_layout(sources.load_source(source, ref))

    if as_json:
        _echo_json(slots_to_json(slots))
    else:
        typer.echo(render_slots(slots))


@app.command()
def diff(
    a: str = typer.Argument(..., help="first layout: JSON snapshot or contract id"),
    b: str = typer.Argument(..., help="second layout: JSON snapshot or contract id"),
    a_ref: Optional[str] = typer.Option(None, "--a-ref", help="git reference where A is defined"),
    b_ref: Optional[str] = typer.Option(None, "--b-ref", help="git reference where B is defined"),
    pad: bool = typer.Option(False, "--pad", help="Allow layouts with different slot counts."),
    only_changed: bool = typer.Option(False, "--only-changed", help="Hide unchanged rows."),
    flat: bool = typer.Option(False, "--flat", help="Align by global byte offset instead of by slot."),
    as_json: bool = typer.Option(False, "--json", help="Print the alignment as JSON."),
) -> None:
    """Align two storage layouts and print where they differ."""
    with _reporting():
        layout_a, layout_b = _load_pair(a, b, a_ref, b_ref)
        slots_a, slots_b = collate_layout(layout_a), collate_layout(layout_b)

        if flat:
            intervals = merge_intervals(flatten_slots(slots_a), flatten_slots(slots_b))
            if as_json:
                _echo_json(intervals_to_json(intervals))
            else:
                typer.echo(render_intervals(intervals, only_changed))
            return

        merged = align_slots(slots_a, slots_b, pad=pad)

    if as_json:
        _echo_json(merged_to_json(merged))
    else:
        typer.echo(render_merged(merged, only_changed))


@app.command()
def check(
    snapshot: Path = typer.Argument(..., help="recorded JSON snapshot"),
    source: str = typer.Argument(..., help="layout to check: JSON snapshot or contract id"),
    ref: Optional[str] = typer.Option(None, "--ref", help="git reference where SOURCE is defined"),
    pad: bool = typer.Option(False, "--pad", help="Allow appended slots."),
) -> None:
    """
    Compare a recorded snapshot with the current layout.

    Exits with status 1 when any byte changed owner or type.
    """
    with _reporting():
        layout_a = load_layout(snapshot)
        layout_b = sources.load_source(source, ref)
        merged = align_slots(collate_layout(layout_a), collate_layout(layout_b), pad=pad)

    if not any(m.changed for m in merged):
        typer.echo("✅  Layout matches snapshot.")
        return

    typer.echo(render_merged(merged, only_changed=True))
    typer.secho("❌  Storage layout changed.", fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


@app.command()
def export(
    path: str = typer.Option(DEFAULT_PATH, "--path", envvar=f"{ENV_PREFIX}PATH",
                             help="Output directory, relative to the project root."),
    clear: bool = typer.Option(False, "--clear", envvar=f"{ENV_PREFIX}CLEAR",
                               help="Remove the output directory first."),
    flat: bool = typer.Option(False, "--flat", envvar=f"{ENV_PREFIX}FLAT",
                              help="Write <Contract>.json without source directories."),
    only: List[str] = typer.Option(None, "--only", help="Regex; export only matching contracts."),
    except_: List[str] = typer.Option(None, "--except", help="Regex; skip matching contracts."),
    spacing: int = typer.Option(2, "--spacing", envvar=f"{ENV_PREFIX}SPACING", help="JSON indentation."),
) -> None:
    """Write the layout of every project contract to JSON snapshots."""
    with _reporting():
        config = ExportConfig(path=path, clear=clear, flat=flat,
                              only=list(only or []), except_=list(except_ or []), spacing=spacing)
        root = Path(sources.open_repo().working_tree_dir)
        # validate before compiling anything
        config.output_directory(root)

        typer.echo("⏳  Building project …", err=True)
        sources.build()

        idents = [i for i in sources.artifact_contract_ids() if config.selects(i)]
        layouts = {}
        for idx, ident in enumerate(idents, 1):
            typer.echo(f"      [{idx}/{len(idents)}] {ident}", err=True)
            layouts[ident] = sources.inspect_contract(ident)

        written = export_layouts(layouts, config, root)

    for dest in written:
        typer.echo(f"  {dest.relative_to(root)}")
    typer.echo(f"\n✅  Exported {len(written)} layout(s).")


@app.command("diff-refs")
def diff_refs(
    old_commit: str = typer.Argument(..., help="older git commit / tag / branch"),
    new_commit: str = typer.Argument(..., help="newer git commit / tag / branch"),
    path: List[str] = typer.Option(
        None,
        "--path",
        "-p",
        help="Source-file prefix(es) to include, e.g. 'src/' or 'contracts/MyLib.sol'. "
             "If omitted, every contract in the project is inspected.",
    ),
) -> None:
    """
    Compare storage layouts between *all* contracts at two git revisions.

    Prints only the contracts whose layout changed.
    """
    with _reporting():
        repo = sources.open_repo()

        typer.echo(f"⏳  Collecting layouts at {old_commit} …")
        old_layouts = sources.collect_layouts(repo, old_commit, path)

        typer.echo(f"⏳  Collecting layouts at {new_commit} …")
        new_layouts = sources.collect_layouts(repo, new_commit, path)

    for c in sorted(set(old_layouts) | set(new_layouts)):
        name = c.split(":")[-1]
        if c not in new_layouts:
            typer.secho(f"\n− Contract: {name} (removed)", fg=typer.colors.RED, bold=True)
            continue
        if c not in old_layouts:
            typer.secho(f"\n+ Contract: {name} (added)", fg=typer.colors.GREEN, bold=True)
            continue

        try:
            merged = align_slots(collate_layout(old_layouts[c]), collate_layout(new_layouts[c]), pad=True)
        except LayoutError as exc:
            typer.secho(f"\nContract: {name}: {exc}", fg=typer.colors.RED, err=True)
            continue
        if not any(m.changed for m in merged):
            continue

        typer.secho(f"\nContract: {name}", fg=typer.colors.CYAN, bold=True)
        typer.echo(render_merged(merged, only_changed=True))

    typer.echo("\n✅  Done.")


# ──────────────────────────────────────────────
# Entrypoint
# ──────────────────────────────────────────────
if __name__ == "__main__":
    app()
