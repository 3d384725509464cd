from __future__ import annotations

import logging
from pathlib import Path

import pytest

from rpg_trek_api.trek.definitions import DEFAULT_DEFINITION, TrekDefinition, definition_from_dict, load_definitions

FROST_PASS = """
key: trek.frost_pass
name: Frost Pass
nodeTypeWeights:
  - {w: 3, v: dialog}
  - {w: 1, v: battle}
grantableItems: [frost-charm]
npcKey: hermit
npcName: Hermit
"""


def test_builtin_definition_only_without_path() -> None:
    definitions = load_definitions(None)

    assert list(definitions) == ["trek.default"]
    assert definitions["trek.default"] is DEFAULT_DEFINITION
    assert [o.value for o in DEFAULT_DEFINITION.node_type_weights] == ["dialog", "reward", "npc", "battle", "minigame"]


def test_yaml_definitions_are_loaded(tmp_path: Path) -> None:
    (tmp_path / "frost.yaml").write_text(FROST_PASS, encoding="utf-8")

    definitions = load_definitions(tmp_path)

    frost = definitions["trek.frost_pass"]
    assert frost.name == "Frost Pass"
    assert [(o.weight, o.value) for o in frost.node_type_weights] == [(3, "dialog"), (1, "battle")]
    assert frost.grantable_items == ("frost-charm",)
    assert frost.npc_key == "hermit"
    assert "trek.default" in definitions


def test_registry_is_read_only(tmp_path: Path) -> None:
    definitions = load_definitions(tmp_path)

    with pytest.raises(TypeError):
        definitions["trek.other"] = DEFAULT_DEFINITION  # type: ignore[index]


def test_unknown_node_type_is_logged(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    (tmp_path / "odd.yaml").write_text("nodeTypeWeights:\n  - {weight: 1, value: puzzle}\n", encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        definitions = load_definitions(tmp_path)

    assert definitions["odd"].node_type_weights[0].value == "puzzle"
    assert "unknown node types" in caplog.text


def test_snake_case_keys_are_accepted() -> None:
    definition = definition_from_dict(
        {"node_type_weights": [{"weight": 1, "value": "npc"}], "npc_name": "Smith"},
        default_key="trek.smithy",
    )

    assert definition.key == "trek.smithy"
    assert definition.name == "trek.smithy"
    assert definition.npc_name == "Smith"


def test_definition_without_weights_is_rejected() -> None:
    with pytest.raises(ValueError):
        TrekDefinition(key="empty", name="Empty", node_type_weights=())


def test_non_mapping_document_names_the_file(tmp_path: Path) -> None:
    (tmp_path / "listed.yaml").write_text("- dialog\n- battle\n", encoding="utf-8")

    with pytest.raises(ValueError, match="listed.yaml"):
        load_definitions(tmp_path)


def test_non_mapping_weight_entry_names_the_file(tmp_path: Path) -> None:
    (tmp_path / "flat.yaml").write_text("nodeTypeWeights:\n  - dialog\n", encoding="utf-8")

    with pytest.raises(ValueError, match="flat.yaml"):
        load_definitions(tmp_path)
