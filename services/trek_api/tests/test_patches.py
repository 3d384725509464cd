from __future__ import annotations

from rpg_trek_api.trek.models import PatchOp
from rpg_trek_api.trek.patches import apply_patch_ops, get_path, set_path


def test_set_creates_nested_dicts_and_lists() -> None:
    doc: dict = {}

    set_path(doc, "modes.trek.activeRunId", "run_1")
    set_path(doc, "inventory.0.items", [])

    assert doc == {"modes": {"trek": {"activeRunId": "run_1"}}, "inventory": [{"items": []}]}
    assert get_path(doc, "inventory.0.items") == []
    assert get_path(doc, "inventory.5.items", "missing") == "missing"


def test_inc_treats_missing_and_non_numeric_as_zero() -> None:
    meta: dict = {"reputation": {"npc": {"smith": "friendly"}}}

    apply_patch_ops(
        meta,
        [
            PatchOp(op="inc", key="reputation.npc.traveler", value=1),
            PatchOp(op="inc", key="reputation.npc.traveler", value=-2),
            PatchOp(op="inc", key="reputation.npc.smith", value=3),
        ],
    )

    assert meta["reputation"]["npc"] == {"traveler": -1, "smith": 3}


def test_push_merge_unset() -> None:
    doc: dict = {"flags": {"a": 1}, "tmp": {"x": 1}}

    apply_patch_ops(
        doc,
        [
            PatchOp(op="push", key="log", value="first"),
            PatchOp(op="push", key="log", value="second"),
            PatchOp(op="merge", key="flags", value={"b": 2}),
            PatchOp(op="unset", key="tmp.x"),
        ],
    )

    assert doc == {"flags": {"a": 1, "b": 2}, "tmp": {}, "log": ["first", "second"]}


def test_pull_removes_first_matching_element() -> None:
    character = {"inventory": [{"items": [{"itemId": "a", "x": 1}, {"itemId": "b"}, {"itemId": "a", "x": 2}]}]}

    apply_patch_ops(character, [PatchOp(op="pull", key="inventory.0.items", value={"itemId": "a"})])

    assert character["inventory"][0]["items"] == [{"itemId": "b"}, {"itemId": "a", "x": 2}]


def test_unknown_ops_and_empty_keys_are_ignored() -> None:
    doc: dict = {"a": 1}

    apply_patch_ops(doc, [PatchOp(op="explode", key="a", value=2), PatchOp(op="set", key="", value=3)])

    assert doc == {"a": 1}


def test_set_through_scalar_replaces_it_with_container() -> None:
    doc: dict = {"modes": "legacy"}

    apply_patch_ops(doc, [PatchOp(op="set", key="modes.trek.lastGrantDate", value="2024-05-01")])

    assert doc == {"modes": {"trek": {"lastGrantDate": "2024-05-01"}}}
