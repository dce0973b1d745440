from __future__ import annotations

import pytest

from conftest import layout, struct
from storage_layout_diff.collate import collate, collate_layout
from storage_layout_diff.errors import ResolutionError
from storage_layout_diff.layout import StorageLayout


def _shape(slots):
    return [(s.index, s.reserved, s.filled, [(e.name, e.offset, e.size) for e in s.entries]) for s in slots]


def test_two_halves_share_a_slot():
    slots = collate_layout(layout([("a", "t_uint128"), ("b", "t_uint128")]))
    assert _shape(slots) == [(0, 32, 32, [("a", 0, 16), ("b", 16, 16)])]


def test_value_that_does_not_fit_opens_next_slot():
    slots = collate_layout(layout([("a", "t_uint256"), ("b", "t_uint8")]))
    assert _shape(slots) == [
        (0, 32, 32, [("a", 0, 32)]),
        (1, 1, 1, [("b", 0, 1)]),
    ]


def test_struct_reserves_rest_of_last_slot():
    s = {"t_struct(S)1_storage": struct("S", [("x", "t_uint8"), ("y", "t_uint8")])}
    slots = collate_layout(layout([("s", "t_struct(S)1_storage"), ("z", "t_uint256")], s))
    assert _shape(slots) == [
        (0, 32, 2, [("s.x", 0, 1), ("s.y", 1, 1)]),
        (1, 32, 32, [("z", 0, 32)]),
    ]


def test_small_value_after_struct_still_starts_new_slot():
    s = {"t_struct(S)1_storage": struct("S", [("x", "t_uint8")])}
    slots = collate_layout(layout([("s", "t_struct(S)1_storage"), ("flag", "t_bool")], s))
    assert [s.index for s in slots] == [0, 1]
    assert slots[1].entries[0].offset == 0


def test_struct_starts_fresh_slot():
    s = {"t_struct(S)1_storage": struct("S", [("x", "t_uint8")])}
    slots = collate_layout(layout([("flag", "t_bool"), ("s", "t_struct(S)1_storage")], s))
    assert _shape(slots) == [
        (0, 1, 1, [("flag", 0, 1)]),
        (1, 32, 1, [("s.x", 0, 1)]),
    ]


def test_mapping_claims_full_slot_and_no_content():
    slots = collate_layout(layout([("flag", "t_bool"), ("balances", "t_mapping(t_address,t_uint256)"), ("n", "t_uint8")]))
    assert _shape(slots) == [
        (0, 1, 1, [("flag", 0, 1)]),
        (1, 32, 0, [("balances", 0, 32)]),
        (2, 1, 1, [("n", 0, 1)]),
    ]
    assert slots[1].entries[0].filled == 0


def test_dynamic_array_and_string_store_length_word():
    slots = collate_layout(layout([("items", "t_array(t_uint256)dyn_storage"), ("name", "t_string_storage")]))
    assert _shape(slots) == [
        (0, 32, 32, [("items", 0, 32)]),
        (1, 32, 32, [("name", 0, 32)]),
    ]


def test_fixed_array_elements_are_expanded():
    slots = collate_layout(layout([("a", "t_array(t_uint8)3_storage"), ("b", "t_uint8")]))
    assert _shape(slots) == [
        (0, 32, 3, [("a[0]", 0, 1), ("a[1]", 1, 1), ("a[2]", 2, 1)]),
        (1, 1, 1, [("b", 0, 1)]),
    ]


def test_fixed_array_spanning_slots_seals_last_one():
    slots = collate_layout(layout([("a", "t_array(t_uint128)3_storage"), ("b", "t_uint8")]))
    assert _shape(slots) == [
        (0, 32, 32, [("a[0]", 0, 16), ("a[1]", 16, 16)]),
        (1, 32, 16, [("a[2]", 0, 16)]),
        (2, 1, 1, [("b", 0, 1)]),
    ]


def test_nested_struct_seals_inner_slot_before_outer_members():
    extra = {
        "t_struct(Inner)1_storage": struct("Inner", [("x", "t_uint8")]),
        "t_struct(Outer)2_storage": struct(
            "Outer", [("inner", "t_struct(Inner)1_storage"), ("y", "t_uint8")], size=64
        ),
    }
    slots = collate_layout(layout([("o", "t_struct(Outer)2_storage")], extra))
    assert _shape(slots) == [
        (0, 32, 1, [("o.inner.x", 0, 1)]),
        (1, 32, 1, [("o.y", 0, 1)]),
    ]


def test_zero_length_array_seals_current_slot():
    slots = collate_layout(layout([("n", "t_uint8"), ("empty", "t_array(t_uint8)0_storage"), ("m", "t_uint8")]))
    assert _shape(slots) == [
        (0, 32, 1, [("n", 0, 1)]),
        (1, 1, 1, [("m", 0, 1)]),
    ]


def test_zero_length_array_first_opens_empty_slot():
    slots = collate_layout(layout([("empty", "t_array(t_uint8)0_storage")]))
    assert _shape(slots) == [(0, 32, 0, [])]


def test_packing_invariants_hold():
    s = {"t_struct(S)1_storage": struct("S", [("owner", "t_address"), ("ok", "t_bool"), ("amount", "t_uint256")], 64)}
    slots = collate_layout(layout([
        ("flag", "t_bool"),
        ("owner", "t_address"),
        ("s", "t_struct(S)1_storage"),
        ("arr", "t_array(t_uint128)3_storage"),
        ("m", "t_mapping(t_address,t_uint256)"),
        ("small", "t_uint8"),
        ("items", "t_array(t_uint256)dyn_storage"),
    ], s))

    assert [s.index for s in slots] == list(range(len(slots)))
    for slot in slots:
        assert sum(e.size for e in slot.entries) <= slot.reserved <= 32
        assert slot.filled == sum(e.filled for e in slot.entries)
        ends = 0
        for e in slot.entries:
            assert e.offset >= ends
            ends = e.end


def test_custom_base_slot():
    lay = layout([("a", "t_uint256"), ("b", "t_uint256")])
    big = 2 ** 200
    slots = collate(lay.storage, lay.types, start_slot=big)
    assert [s.index for s in slots] == [big, big + 1]


def test_base_slot_taken_from_document():
    doc_layout = layout([("a", "t_uint256")])
    doc = doc_layout.to_json()
    doc["storage"][0]["slot"] = str(2 ** 255)
    slots = collate_layout(StorageLayout.from_json(doc))
    assert slots[0].index == 2 ** 255


def test_missing_type_fails_with_identifier():
    lay = layout([("a", "t_uint256"), ("b", "t_nope")])
    with pytest.raises(ResolutionError, match="t_nope"):
        collate_layout(lay)


def test_missing_member_type_fails():
    s = {"t_struct(S)1_storage": struct("S", [("x", "t_missing")])}
    with pytest.raises(ResolutionError, match="t_missing"):
        collate_layout(layout([("s", "t_struct(S)1_storage")], s))


def test_empty_layout_has_no_slots():
    assert collate_layout(layout([])) == []


def test_collation_is_deterministic():
    lay = layout([("a", "t_uint8"), ("b", "t_array(t_uint128)3_storage"), ("c", "t_mapping(t_address,t_uint256)")])
    assert collate_layout(lay) == collate_layout(lay)
