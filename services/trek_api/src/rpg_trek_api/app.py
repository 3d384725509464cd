"""Создание приложения FastAPI."""

from __future__ import annotations

import json
import logging
import logging.config
import time
from pathlib import Path
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.routes import router
from .config import Settings, get_settings
from .data import DataStoreProtocol, InMemoryDataStore, PostgresDataStore
from .notifications import HttpClientChannel, RedisClientChannel
from .observability import setup_observability
from .trek import InventorySyncNotifier, TrekEngine, TrekService, load_definitions
from .version import __version__

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    data_store: DataStoreProtocol | None = None,
    engine: TrekEngine | None = None,
) -> FastAPI:
    """Создаёт и настраивает экземпляр FastAPI.

    Args:
        settings: настройки; по умолчанию `get_settings()`.
        data_store: готовое хранилище (тесты); иначе Postgres или in-memory.
        engine: готовая стейт-машина (тесты с фиксированными часами).

    Returns:
        FastAPI: Инициализированное приложение с подключёнными маршрутами.
    """

    _setup_logging()
    settings = settings or get_settings()
    app = FastAPI(
        title="RPG-Bot Trek API",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    setup_observability(app, settings, service_name="trek-api")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if engine is None:
        definitions_path = Path(settings.trek_definitions_path) if settings.trek_definitions_path else None
        engine = TrekEngine(
            load_definitions(definitions_path),
            busy_ms=settings.trek_busy_ms,
            history_limit=settings.trek_history_limit,
        )
    if data_store is None:
        data_store = _build_data_store(settings, engine)

    channel = _build_client_channel(settings)
    notifier = (
        InventorySyncNotifier(channel, timeout_seconds=settings.trek_notify_timeout_seconds) if channel else None
    )
    app.state.data_store = data_store
    app.state.client_channel = channel
    app.state.inventory_notifier = notifier
    app.state.trek_service = TrekService(
        data_store,
        engine,
        notifier=notifier,
        default_def_key=settings.trek_default_def_key,
    )

    @app.middleware("http")
    async def inject_trace_id(request: Request, call_next):  # type: ignore[override]
        """Добавляет `trace_id` в состояние запроса и заголовки ответа.

        Генерирует новый идентификатор, если клиент не передал `X-Request-Id`/`X-Trace-Id`.
        """

        incoming = request.headers.get("x-trace-id") or request.headers.get("x-request-id")
        trace_id = incoming or uuid4().hex
        request.state.trace_id = trace_id
        response: Response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        response.headers.setdefault("X-Request-Id", trace_id)
        return response

    # Единый формат ошибок
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        trace_id = getattr(request.state, "trace_id", "")
        payload: dict[str, Any] = {
            "code": exc.status_code,
            "error": "HTTPException",
            "message": _stringify_detail(exc.detail),
            "traceId": trace_id,
        }
        if isinstance(exc.detail, dict):
            # доп. поля (например, busyMs) поднимаем на верхний уровень
            payload.update({k: v for k, v in exc.detail.items() if k != "message"})
        return Response(
            content=json.dumps(payload, ensure_ascii=False),
            status_code=exc.status_code,
            media_type="application/json",
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        trace_id = getattr(request.state, "trace_id", "")
        payload = {
            "code": status.HTTP_422_UNPROCESSABLE_ENTITY,
            "error": "ValidationError",
            "message": _summarize_validation(exc),
            "traceId": trace_id,
        }
        return Response(
            content=json.dumps(payload, ensure_ascii=False),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            media_type="application/json",
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):  # type: ignore[override]
        trace_id = getattr(request.state, "trace_id", "")
        logger.exception("Unhandled error: %s", exc)
        payload = {
            "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "error": "InternalError",
            "message": "Internal Server Error",
            "traceId": trace_id,
        }
        return Response(
            content=json.dumps(payload, ensure_ascii=False),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            media_type="application/json",
        )

    @app.middleware("http")
    async def http_logger(request: Request, call_next):  # type: ignore[override]
        """Логирует метод, путь, статус и время обработки с traceId."""

        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            logging.getLogger("http").info(
                "method=%s path=%s status=%s elapsedMs=%s traceId=%s",
                request.method,
                request.url.path,
                response.status_code if response else 500,
                elapsed_ms,
                getattr(request.state, "trace_id", ""),
            )

    app.include_router(router)

    @app.on_event("shutdown")
    async def _close_client_channel() -> None:
        if notifier is not None:
            await notifier.drain()
        if channel is not None:
            await channel.close()

    @app.get("/config", tags=["system"])
    def read_config_version(request: Request) -> dict[str, Any]:
        """Возвращает версию API, доступные треки и канал уведомлений."""

        return {
            "apiVersion": settings.api_version,
            "defaultDefKey": settings.trek_default_def_key,
            "definitions": sorted(app.state.trek_service.engine.definitions),
            "inventorySync": type(channel).__name__ if channel else "disabled",
            "traceId": getattr(request.state, "trace_id", ""),
        }

    return app


def _build_data_store(settings: Settings, engine: TrekEngine) -> DataStoreProtocol:
    data_store: DataStoreProtocol | None = None
    if settings.database_url:
        try:
            data_store = PostgresDataStore(settings.database_url)
        except Exception as exc:  # pragma: no cover - зависит от окружения
            if not settings.database_fallback_to_memory:
                raise
            logger.warning("Postgres недоступен (%s), откатываемся на in-memory", exc)
    elif not settings.database_fallback_to_memory:
        raise RuntimeError(
            "DATABASE_URL не задан, а откат на in-memory запрещен (DATABASE_FALLBACK_TO_MEMORY=false)"
        )
    if data_store is None:
        logger.warning("Используется in-memory хранилище (dev/test режим). Укажите DATABASE_URL для Postgres.")
        data_store = InMemoryDataStore()
    # каталог должен знать предметы, которые треки умеют выдавать
    for definition in engine.definitions.values():
        for item_key in definition.grantable_items:
            data_store.upsert_item(key=item_key, name=item_key)
    return data_store


def _build_client_channel(settings: Settings) -> HttpClientChannel | RedisClientChannel | None:
    if settings.trek_notify_redis_url:
        return RedisClientChannel(settings.trek_notify_redis_url)
    if settings.trek_notify_base_url:
        return HttpClientChannel(settings.trek_notify_base_url, timeout=settings.trek_notify_timeout_seconds)
    return None


def _setup_logging() -> None:
    """Инициализирует логирование из observability/logging.json, если доступно."""

    config_path = Path.cwd() / "observability" / "logging.json"
    if not config_path.exists():
        return
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            logging.config.dictConfig(json.load(fh))
    except (OSError, ValueError) as exc:
        logger.warning("Не удалось применить %s: %s", config_path, exc)


def _stringify_detail(detail: object) -> str:
    if isinstance(detail, dict) and "message" in detail:
        return str(detail["message"])
    if isinstance(detail, (dict, list)):
        return json.dumps(detail, ensure_ascii=False)
    return str(detail)


def _summarize_validation(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation error"
    first = errors[0]
    msg = first.get("msg") or "Validation error"
    loc = first.get("loc")
    if loc:
        return f"{msg} at {'.'.join(str(x) for x in loc)}"
    return str(msg)
