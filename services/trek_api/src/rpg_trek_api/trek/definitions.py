"""Реестр определений треков (неизменяемый, собирается один раз при старте)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple

import yaml

from .rng import WeightedOption

logger = logging.getLogger(__name__)

NODE_TYPES = ("dialog", "reward", "npc", "battle", "minigame")


@dataclass(frozen=True)
class TrekDefinition:
    key: str
    name: str
    node_type_weights: Tuple[WeightedOption[str], ...]
    grantable_items: Tuple[str, ...] = ()
    npc_key: str = "traveler"
    npc_name: str = "Traveler"
    minigame_key: str = "trek.lockpick"
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.node_type_weights:
            raise ValueError(f"Trek definition {self.key} has no node type weights")


DEFAULT_DEFINITION = TrekDefinition(
    key="trek.default",
    name="Trek",
    node_type_weights=(
        WeightedOption(55, "dialog"),
        WeightedOption(20, "reward"),
        WeightedOption(10, "npc"),
        WeightedOption(10, "battle"),
        WeightedOption(5, "minigame"),
    ),
    grantable_items=("runic-bag",),
)


def definition_from_dict(raw: Mapping[str, Any], *, default_key: str) -> TrekDefinition:
    """Собирает определение из YAML/JSON-словаря (camelCase или snake_case).

    Raises:
        ValueError: документ не словарь, веса не список словарей или пусты.
    """

    if not isinstance(raw, Mapping):
        raise ValueError(f"expected a mapping, got {type(raw).__name__}")
    weights_raw = raw.get("nodeTypeWeights") or raw.get("node_type_weights") or []
    if not isinstance(weights_raw, list) or not all(isinstance(item, Mapping) for item in weights_raw):
        raise ValueError("nodeTypeWeights must be a list of {w, v} mappings")
    weights = tuple(
        WeightedOption(float(item.get("w", item.get("weight", 0))), str(item.get("v", item.get("value"))))
        for item in weights_raw
    )
    key = str(raw.get("key") or default_key)
    return TrekDefinition(
        key=key,
        name=str(raw.get("name") or key),
        node_type_weights=weights,
        grantable_items=tuple(raw.get("grantableItems") or raw.get("grantable_items") or ()),
        npc_key=str(raw.get("npcKey") or raw.get("npc_key") or "traveler"),
        npc_name=str(raw.get("npcName") or raw.get("npc_name") or "Traveler"),
        minigame_key=str(raw.get("minigameKey") or raw.get("minigame_key") or "trek.lockpick"),
        metadata=dict(raw.get("metadata") or {}),
    )


def load_definitions(path: Path | None = None) -> Mapping[str, TrekDefinition]:
    """Встроенные определения плюс `*.yaml` из каталога `path` (если он задан и существует).

    Returns:
        Mapping[str, TrekDefinition]: read-only отображение `defKey -> определение`.
    """

    definitions: Dict[str, TrekDefinition] = {DEFAULT_DEFINITION.key: DEFAULT_DEFINITION}
    if path is None or not path.exists():
        return MappingProxyType(definitions)
    for file_path in sorted(path.glob("*.yaml")):
        with file_path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
        try:
            definition = definition_from_dict(raw, default_key=file_path.stem)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid trek definition {file_path}: {exc}") from exc
        unknown = {o.value for o in definition.node_type_weights} - set(NODE_TYPES)
        if unknown:
            logger.warning("Trek definition %s uses unknown node types: %s", definition.key, sorted(unknown))
        definitions[definition.key] = definition
        logger.info("Loaded trek definition %s from %s", definition.key, file_path)
    return MappingProxyType(definitions)
