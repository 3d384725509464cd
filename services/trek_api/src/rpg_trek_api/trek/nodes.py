"""Компиляция узлов трека: тип узла -> текст и набор выборов с эффектами.

Узлы никогда не содержат выбора «следующая остановка»: переход дальше это
отдельное действие UI, доступное только когда открытого узла нет.
"""

from __future__ import annotations

from datetime import datetime
from typing import List
from uuid import uuid4

from .definitions import TrekDefinition
from .models import (
    CharacterDataPatch,
    CharacterInventoryPatch,
    EncounterRef,
    NodePresentation,
    NpcDescriptor,
    PatchOp,
    ProfileMetaPatch,
    TrekChoice,
    TrekNode,
)

TREK_ROOT_KEY = "modes.trek"
INVENTORY_ITEMS_KEY = "inventory.0.items"

_NODE_TEXT = {
    "dialog": "You press onward. The wind carries distant whispers.",
    "reward": "Something glints in the snow. A small cache awaits.",
    "npc": "A traveler emerges from the fog and waves you closer.",
    "battle": "Tracks circle you. Something is hunting.",
    "minigame": "A strange device hums. It looks like a challenge.",
}


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:16]}"


def _flow(choice_id: str, label: str) -> TrekChoice:
    return TrekChoice(id=choice_id, label=label, tags=["flow"])


def _encounter_choice(
    *,
    choice_id: str,
    label: str,
    kind: str,
    ref_id: str,
    character_id: str,
    step_index: int,
    now: datetime,
    extra: dict,
) -> TrekChoice:
    encounter = {
        "kind": kind,
        "refId": ref_id,
        **extra,
        "seed": f"{character_id}:{step_index}:{ref_id}",
        "createdDate": now.isoformat(),
    }
    return TrekChoice(
        id=choice_id,
        label=label,
        effects=[
            CharacterDataPatch(
                entity_id=character_id,
                ops=[PatchOp(op="set", key=f"{TREK_ROOT_KEY}.activeEncounter", value=encounter)],
            )
        ],
        opens=EncounterRef(kind=kind, ref_id=ref_id),
        tags=["effect", kind],
    )


def compile_node(
    *,
    node_id: str,
    node_type: str,
    step_index: int,
    definition: TrekDefinition,
    character_id: str,
    profile_id: str,
    now: datetime,
) -> TrekNode:
    """Создаёт открытый узел заданного типа.

    Args:
        node_id: идентификатор нового узла.
        node_type: тип из весов определения (`dialog`, `reward`, ...).
        step_index: номер шага до инкремента, влияет на сложность боя.
        definition: определение трека (предметы, NPC, ключ мини-игры).
        character_id: персонаж, на которого пишутся эффекты.
        profile_id: профиль, на который пишется репутация.
        now: время создания узла и эффектов.

    Returns:
        TrekNode: узел хотя бы с одним выбором.
    """

    choices: List[TrekChoice] = []
    npc: NpcDescriptor | None = None

    if node_type == "dialog":
        choices += [_flow("push", "Push forward"), _flow("rest", "Rest briefly"), _flow("scout", "Scout the ridge")]

    elif node_type == "reward":
        effects: list = []
        if definition.grantable_items:
            effects.append(
                CharacterInventoryPatch(
                    entity_id=character_id,
                    ops=[
                        PatchOp(
                            op="push",
                            key=INVENTORY_ITEMS_KEY,
                            value={"itemKey": definition.grantable_items[0], "x": 1, "y": 1},
                        )
                    ],
                )
            )
        effects.append(
            CharacterDataPatch(
                entity_id=character_id,
                ops=[PatchOp(op="set", key=f"{TREK_ROOT_KEY}.lastGrantDate", value=now.isoformat())],
            )
        )
        choices.append(TrekChoice(id="claim", label="Take Supplies", effects=effects, tags=["effect", "reward"]))
        choices.append(_flow("leave", "Leave it"))

    elif node_type == "npc":
        reputation_key = f"reputation.npc.{definition.npc_key}"
        npc = NpcDescriptor(id=definition.npc_key, name=definition.npc_name, tags=["wanderer"])
        choices.append(
            TrekChoice(
                id="talk",
                label="Talk",
                effects=[ProfileMetaPatch(entity_id=profile_id, ops=[PatchOp(op="inc", key=reputation_key, value=1)])],
                tags=["effect", "npc"],
            )
        )
        choices.append(
            TrekChoice(
                id="insult",
                label="Insult",
                effects=[ProfileMetaPatch(entity_id=profile_id, ops=[PatchOp(op="inc", key=reputation_key, value=-2)])],
                tags=["effect", "npc", "negative"],
            )
        )
        choices.append(_flow("moveOn", "Move on"))

    elif node_type == "battle":
        choices.append(
            _encounter_choice(
                choice_id="fight",
                label="Fight",
                kind="battle",
                ref_id=new_id("enc"),
                character_id=character_id,
                step_index=step_index,
                now=now,
                extra={"difficulty": min(10, 1 + step_index // 3)},
            )
        )
        choices.append(_flow("flee", "Flee"))

    elif node_type == "minigame":
        choices.append(
            _encounter_choice(
                choice_id="attempt",
                label="Attempt Challenge",
                kind="minigame",
                ref_id=new_id("mini"),
                character_id=character_id,
                step_index=step_index,
                now=now,
                extra={"minigameKey": definition.minigame_key},
            )
        )
        choices.append(_flow("skip", "Skip"))

    if not choices:
        choices.append(_flow("ok", "Continue"))

    return TrekNode(
        id=node_id,
        created_date=now,
        node_type=node_type,
        presentation=NodePresentation(
            title=definition.name,
            text=_NODE_TEXT.get(node_type, "An event unfolds."),
            npc=npc,
        ),
        choices=choices,
        tags=["trek"],
    )
