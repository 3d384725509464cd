"""Утилиты для выпуска JWT."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import jwt

from .config import Settings

TOKEN_ISSUER = "rpg-trek-api"
TOKEN_AUDIENCE = "rpg-trek-client"


def issue_access_token(*, settings: Settings, profile_id: str, extra: dict[str, Any] | None = None) -> tuple[str, int]:
    """Создаёт короткоживущий access token для профиля.

    Args:
        settings: Настройки сервиса.
        profile_id: Идентификатор профиля (claim `sub`).
        extra: Дополнительные данные, которые попадут в claim `ctx`.

    Returns:
        tuple[str, int]: JWT и количество секунд до истечения.
    """

    now = datetime.now(tz=UTC)
    expires_in = timedelta(seconds=settings.jwt_ttl_seconds)
    claims = {
        "iss": TOKEN_ISSUER,
        "aud": TOKEN_AUDIENCE,
        "sub": profile_id,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
        "jti": uuid4().hex,
        "ctx": extra or {},
    }
    token = jwt.encode(
        payload=claims,
        key=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    return token, settings.jwt_ttl_seconds
