"""Маршруты Trek API."""

from __future__ import annotations

import math
from typing import Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..auth.dependencies import get_trek_context, get_trek_service
from ..config import HealthPayload, Settings, get_settings
from ..models import TrekChooseRequest, TrekDefinitionPayload, TrekNextStopRequest
from ..trek import BusyError, NodeNotOpenError, NotFoundError, TrekContext, TrekService, UnauthorizedError

router = APIRouter()


def _raise_http(exc: Exception) -> NoReturn:
    """Переводит ошибки трека в HTTP-ответы."""

    if isinstance(exc, BusyError):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"message": str(exc), "busyMs": exc.busy_ms},
            headers={"Retry-After": str(max(1, math.ceil(exc.busy_ms / 1000)))},
        ) from exc
    if isinstance(exc, UnauthorizedError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, NodeNotOpenError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    raise exc


@router.get("/health", response_model=HealthPayload, tags=["system"])
def read_health(settings: Settings = Depends(get_settings)) -> HealthPayload:
    """Возвращает статус здоровья сервиса."""

    return HealthPayload(status="ok", api_version=settings.api_version)


@router.get("/v1/trek/definitions", tags=["trek"])
def list_trek_definitions(service: TrekService = Depends(get_trek_service)) -> dict[str, Any]:
    items = [
        TrekDefinitionPayload.from_definition(d).model_dump(by_alias=True)
        for d in service.engine.definitions.values()
    ]
    return {"items": items}


@router.get("/v1/trek/state", tags=["trek"])
async def read_trek_state(
    trek_id: str | None = Query(None, alias="trekId", min_length=1),
    def_key: str | None = Query(None, alias="defKey", min_length=1),
    ctx: TrekContext = Depends(get_trek_context),
    service: TrekService = Depends(get_trek_service),
) -> dict[str, Any]:
    """Состояние трека активного персонажа; создаёт забег, но не открывает узел."""

    try:
        result = await service.get_state(ctx, def_key or trek_id)
    except (BusyError, UnauthorizedError, NotFoundError, NodeNotOpenError) as exc:
        _raise_http(exc)
    return result.model_dump(by_alias=True, mode="json")


@router.post("/v1/trek/next-stop", tags=["trek"])
async def next_trek_stop(
    payload: TrekNextStopRequest,
    ctx: TrekContext = Depends(get_trek_context),
    service: TrekService = Depends(get_trek_service),
) -> dict[str, Any]:
    """Открывает следующий узел, если открытого нет («Next Stop» в UI)."""

    try:
        result = await service.next_stop(ctx, payload.resolved_def_key)
    except (BusyError, UnauthorizedError, NotFoundError, NodeNotOpenError) as exc:
        _raise_http(exc)
    return result.model_dump(by_alias=True, mode="json")


@router.post("/v1/trek/choose", tags=["trek"])
async def choose_trek_option(
    payload: TrekChooseRequest,
    ctx: TrekContext = Depends(get_trek_context),
    service: TrekService = Depends(get_trek_service),
) -> dict[str, Any]:
    """Применяет выбор на открытом узле и закрывает его."""

    try:
        result = await service.choose(
            ctx,
            run_id=payload.run_id,
            node_id=payload.node_id,
            choice_id=payload.choice_id,
        )
    except (BusyError, UnauthorizedError, NotFoundError, NodeNotOpenError) as exc:
        _raise_http(exc)
    return result.model_dump(by_alias=True, mode="json")
