from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

import pytest

from storage_layout_diff.layout import StorageLayout


def scalar(label: str, size: int) -> Dict[str, Any]:
    return {"encoding": "inplace", "label": label, "numberOfBytes": str(size)}


def struct(name: str, members: Sequence[Tuple[str, str]], size: int = 32) -> Dict[str, Any]:
    return {
        "encoding": "inplace",
        "label": f"struct {name}",
        "numberOfBytes": str(size),
        "members": [
            {"astId": 100 + i, "contract": "src/Box.sol:Box", "label": label, "offset": 0, "slot": "0", "type": t}
            for i, (label, t) in enumerate(members)
        ],
    }


BASE_TYPES: Dict[str, Dict[str, Any]] = {
    "t_uint256": scalar("uint256", 32),
    "t_uint128": scalar("uint128", 16),
    "t_uint8": scalar("uint8", 1),
    "t_address": scalar("address", 20),
    "t_bool": scalar("bool", 1),
    "t_string_storage": {"encoding": "bytes", "label": "string", "numberOfBytes": "32"},
    "t_mapping(t_address,t_uint256)": {
        "encoding": "mapping",
        "key": "t_address",
        "label": "mapping(address => uint256)",
        "numberOfBytes": "32",
        "value": "t_uint256",
    },
    "t_array(t_uint256)dyn_storage": {
        "base": "t_uint256",
        "encoding": "dynamic_array",
        "label": "uint256[]",
        "numberOfBytes": "32",
    },
    "t_array(t_uint8)3_storage": {
        "base": "t_uint8",
        "encoding": "inplace",
        "label": "uint8[3]",
        "numberOfBytes": "32",
    },
    "t_array(t_uint8)0_storage": {
        "base": "t_uint8",
        "encoding": "inplace",
        "label": "uint8[0]",
        "numberOfBytes": "0",
    },
    "t_array(t_uint128)3_storage": {
        "base": "t_uint128",
        "encoding": "inplace",
        "label": "uint128[3]",
        "numberOfBytes": "64",
    },
}


def document(storage: Sequence[Tuple[str, str]], extra_types: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """A `forge inspect` style document declaring `(label, type)` pairs in order."""
    types = dict(BASE_TYPES)
    types.update(extra_types or {})
    return {
        "storage": [
            {"astId": i + 1, "contract": "src/Box.sol:Box", "label": label, "offset": 0, "slot": "0", "type": t}
            for i, (label, t) in enumerate(storage)
        ],
        "types": types,
    }


def layout(storage: Sequence[Tuple[str, str]], extra_types: Dict[str, Any] | None = None) -> StorageLayout:
    return StorageLayout.from_json(document(storage, extra_types))


@pytest.fixture()
def write_doc(tmp_path: Path):
    def _write(name: str, storage: List[Tuple[str, str]], extra_types: Dict[str, Any] | None = None) -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(document(storage, extra_types), indent=2))
        return path

    return _write
