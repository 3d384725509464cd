"""Модели трека: сохраняемый забег, узлы, выборы, патчи и UI-представление.

Внутри сервиса работаем с типизированными моделями; в JSON (camelCase)
сериализуем только на границе хранилища и API.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PatchOp(BaseModel):
    """Одна операция патча. `op` не ограничен: неизвестные виды сохраняются и пропускаются."""

    op: str
    key: str
    value: Any = None


class _EntityPatchBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entity_id: str = Field(..., alias="entityId")
    ops: List[PatchOp] = Field(default_factory=list)


class ProfileMetaPatch(_EntityPatchBase):
    entity_type: Literal["profile.meta"] = Field("profile.meta", alias="entityType")


class CharacterDataPatch(_EntityPatchBase):
    entity_type: Literal["character.data"] = Field("character.data", alias="entityType")


class CharacterInventoryPatch(_EntityPatchBase):
    entity_type: Literal["character.inventory"] = Field("character.inventory", alias="entityType")


EntityPatch = Annotated[
    Union[ProfileMetaPatch, CharacterDataPatch, CharacterInventoryPatch],
    Field(discriminator="entity_type"),
]


class EncounterRef(BaseModel):
    """Ссылка на внешний саб-энкаунтер (бой, мини-игра)."""

    model_config = ConfigDict(populate_by_name=True)

    kind: str
    ref_id: str = Field(..., alias="refId")
    data: Optional[Dict[str, Any]] = None


class TrekChoice(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    label: str
    effects: List[EntityPatch] = Field(default_factory=list)
    opens: Optional[EncounterRef] = None
    tags: List[str] = Field(default_factory=list)


class NpcDescriptor(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class NodePresentation(BaseModel):
    title: Optional[str] = None
    text: str
    npc: Optional[NpcDescriptor] = None


class TrekNode(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    created_date: datetime = Field(..., alias="createdDate")
    node_type: str = Field(..., alias="nodeType")
    presentation: NodePresentation
    choices: List[TrekChoice] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    def find_choice(self, choice_id: str) -> TrekChoice | None:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None


class HistoryEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    node_id: str = Field(..., alias="nodeId")
    chosen_choice_id: Optional[str] = Field(None, alias="chosenChoiceId")
    at: datetime


class TrekRun(BaseModel):
    """Забег одного персонажа по определению трека."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    def_key: str = Field(..., alias="defKey")
    seed: str
    rng_state: int = Field(..., alias="rngState", ge=0, le=0xFFFFFFFF)
    step_index: int = Field(0, alias="stepIndex", ge=0)
    open_node_id: Optional[str] = Field(None, alias="openNodeId")
    busy_until: Optional[datetime] = Field(None, alias="busyUntil")
    nodes: Dict[str, TrekNode] = Field(default_factory=dict)
    history: List[HistoryEntry] = Field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        """JSON-совместимый словарь для сохранения в `character.data`."""

        return self.model_dump(by_alias=True, mode="json")


class TrekStatus(str, Enum):
    READY = "READY"
    AWAIT_CHOICE = "AWAIT_CHOICE"
    BUSY = "BUSY"


class TrekUiFeedItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    kind: str
    tone: Optional[str] = None
    title: Optional[str] = None
    text: str
    node_id: Optional[str] = Field(None, alias="nodeId")
    choice_id: Optional[str] = Field(None, alias="choiceId")
    created_date: Optional[datetime] = Field(None, alias="createdDate")


class TrekUiChoice(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    label: str
    enabled: bool
    node_id: str = Field(..., alias="nodeId")
    tags: List[str] = Field(default_factory=list)


class TrekUiState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stop_index: int = Field(..., alias="stopIndex")
    status: TrekStatus
    can_advance: bool = Field(..., alias="canAdvance")
    feed: List[TrekUiFeedItem] = Field(default_factory=list)
    choices: List[TrekUiChoice] = Field(default_factory=list)
    busy_ms: int = Field(0, alias="busyMs", ge=0)


class InventorySyncOp(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    op: Literal["add", "remove"]
    item_key: str = Field(..., alias="itemKey")
    qty: int = 1


class SyncCharacterInventoryPayload(BaseModel):
    """Подсказка клиенту о сходимости инвентаря (`patch`: дельта, `refresh`: перечитать)."""

    model_config = ConfigDict(populate_by_name=True)

    character_id: str = Field(..., alias="characterId")
    mode: Literal["patch", "refresh"] = "patch"
    ops: List[InventorySyncOp] = Field(default_factory=list)
    reason: Optional[str] = None
    source: Optional[str] = None


class TrekStateResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    run_id: str = Field(..., alias="runId")
    state: TrekUiState


class TrekNextStopResult(TrekStateResult):
    open_node_id: Optional[str] = Field(None, alias="openNodeId")
    run: TrekRun
