"""FastAPI зависимости для авторизации и контекста трека."""

from __future__ import annotations

from typing import Any

import jwt
from fastapi import Depends, HTTPException, Request, status

from rpg_trek_api.config import Settings, get_settings
from rpg_trek_api.jwt_utils import TOKEN_AUDIENCE, TOKEN_ISSUER
from rpg_trek_api.trek import TrekContext, TrekService


def _extract_token(request: Request) -> str:
    auth_header = request.headers.get("authorization") or request.headers.get("Authorization")
    if not auth_header or not auth_header.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    return auth_header.split(" ", 1)[1]


def get_trek_service(request: Request) -> TrekService:
    service = getattr(request.app.state, "trek_service", None)
    if not service:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Trek service unavailable")
    return service


def get_trek_context(request: Request, settings: Settings = Depends(get_settings)) -> TrekContext:
    """Проверяет bearer JWT и строит контекст вызова с профилем из claim `sub`."""

    token = _extract_token(request)
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            key=settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=TOKEN_AUDIENCE,
            issuer=TOKEN_ISSUER,
        )
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing subject")
    return TrekContext(profile_id=str(sub), trace_id=getattr(request.state, "trace_id", None))
