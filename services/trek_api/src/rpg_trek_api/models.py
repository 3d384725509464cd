"""Pydantic-модели публичного API."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .trek import TrekDefinition


class TrekNextStopRequest(BaseModel):
    """Запрос следующей остановки (`trekId` является синонимом `defKey`)."""

    model_config = ConfigDict(populate_by_name=True)

    trek_id: Optional[str] = Field(None, alias="trekId", min_length=1)
    def_key: Optional[str] = Field(None, alias="defKey", min_length=1)

    @property
    def resolved_def_key(self) -> Optional[str]:
        return self.def_key or self.trek_id


class TrekChooseRequest(BaseModel):
    """Выбор на открытом узле."""

    model_config = ConfigDict(populate_by_name=True)

    run_id: str = Field(..., alias="runId", min_length=1)
    node_id: str = Field(..., alias="nodeId", min_length=1)
    choice_id: str = Field(..., alias="choiceId", min_length=1)


class NodeTypeWeightPayload(BaseModel):
    weight: float
    node_type: str = Field(..., alias="nodeType")

    model_config = ConfigDict(populate_by_name=True)


class TrekDefinitionPayload(BaseModel):
    """Определение трека в публичном API."""

    model_config = ConfigDict(populate_by_name=True)

    key: str
    name: str
    node_type_weights: List[NodeTypeWeightPayload] = Field(default_factory=list, alias="nodeTypeWeights")
    grantable_items: List[str] = Field(default_factory=list, alias="grantableItems")

    @classmethod
    def from_definition(cls, definition: TrekDefinition) -> "TrekDefinitionPayload":
        return cls(
            key=definition.key,
            name=definition.name,
            node_type_weights=[
                NodeTypeWeightPayload(weight=o.weight, node_type=o.value) for o in definition.node_type_weights
            ],
            grantable_items=list(definition.grantable_items),
        )
