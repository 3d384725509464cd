"""Фасад трека: getState / nextStop / choose поверх хранилища профилей и персонажей."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Tuple

from ..data import CharacterRecord, DataStoreProtocol, NotFoundError, ProfileRecord
from .engine import PatchTargets, TrekEngine
from .errors import UnauthorizedError
from .inventory_sync import InventorySyncNotifier, inventory_ops_from_patches
from .models import TrekNextStopResult, TrekStateResult

logger = logging.getLogger(__name__)

DEFAULT_DEF_KEY = "trek.default"


@dataclass(frozen=True)
class TrekContext:
    """Контекст вызова: кто вызывает (профиль) и trace id для логов."""

    profile_id: Optional[str]
    trace_id: Optional[str] = None


class TrekService:
    """Оркестрация: загрузка -> стейт-машина -> одно сохранение -> проекция в UI.

    Вызовы одного профиля сериализуются `asyncio.Lock` в пределах процесса;
    между процессами действует last-writer-wins хранилища.
    """

    def __init__(
        self,
        store: DataStoreProtocol,
        engine: TrekEngine,
        *,
        notifier: InventorySyncNotifier | None = None,
        default_def_key: str = DEFAULT_DEF_KEY,
    ) -> None:
        self._store = store
        self._engine = engine
        self._notifier = notifier
        self._default_def_key = default_def_key
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @property
    def engine(self) -> TrekEngine:
        return self._engine

    @asynccontextmanager
    async def _profile_lock(self, profile_id: str) -> AsyncIterator[None]:
        """Сериализует вызовы профиля; запись удаляется, когда её больше никто не ждёт."""

        lock = self._locks.setdefault(profile_id, asyncio.Lock())
        self._lock_users[profile_id] = self._lock_users.get(profile_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[profile_id] -= 1
            if not self._lock_users[profile_id]:
                del self._lock_users[profile_id]
                del self._locks[profile_id]

    @staticmethod
    def _require_profile(ctx: TrekContext) -> str:
        if not ctx.profile_id:
            raise UnauthorizedError("Unauthorized")
        return ctx.profile_id

    async def _load(self, profile_id: str) -> Tuple[ProfileRecord, CharacterRecord]:
        profile = await asyncio.to_thread(self._store.get_profile, profile_id)
        characters = await asyncio.to_thread(lambda: self._store.list_characters(profile_id=profile.id))
        if not characters:
            raise NotFoundError("No character")
        character = characters[0]
        if not isinstance(profile.meta, dict):
            profile.meta = {}
        if not isinstance(character.data, dict):
            character.data = {}
        if not character.inventory:
            character.inventory = [{"items": []}]
        return profile, character

    async def _persist(self, profile: ProfileRecord, character: CharacterRecord) -> None:
        await asyncio.to_thread(self._store.save_profile_and_character, profile, character)

    async def get_state(self, ctx: TrekContext, def_key: str | None = None) -> TrekStateResult:
        """Текущее состояние; создаёт забег при отсутствии, но узел не открывает."""

        profile_id = self._require_profile(ctx)
        definition = self._engine.get_definition(def_key or self._default_def_key)
        async with self._profile_lock(profile_id):
            profile, character = await self._load(profile_id)
            run, created = self._engine.ensure_run(
                character.data, definition, profile_id=profile.id, character_id=character.id
            )
            if created:
                await self._persist(profile, character)
        return TrekStateResult(run_id=run.id, state=self._engine.project(run))

    async def next_stop(self, ctx: TrekContext, def_key: str | None = None) -> TrekNextStopResult:
        """Открывает следующий узел; при уже открытом узле возвращает текущее состояние."""

        profile_id = self._require_profile(ctx)
        definition = self._engine.get_definition(def_key or self._default_def_key)
        async with self._profile_lock(profile_id):
            profile, character = await self._load(profile_id)
            run, created = self._engine.ensure_run(
                character.data, definition, profile_id=profile.id, character_id=character.id
            )
            run_definition = self._engine.get_definition(run.def_key)
            generated = self._engine.generate_next(
                run, run_definition, profile_id=profile.id, character_id=character.id
            )
            if created or generated:
                self._engine.save_run(character.data, run)
                await self._persist(profile, character)
        logger.info(
            "Trek nextStop run=%s openNode=%s step=%s generated=%s traceId=%s",
            run.id,
            run.open_node_id,
            run.step_index,
            generated,
            ctx.trace_id or "",
        )
        return TrekNextStopResult(
            run_id=run.id,
            open_node_id=run.open_node_id,
            run=run,
            state=self._engine.project(run),
        )

    async def choose(self, ctx: TrekContext, *, run_id: str, node_id: str, choice_id: str) -> TrekStateResult:
        """Применяет выбор открытого узла, закрывает узел и при необходимости шлёт подсказку по инвентарю."""

        profile_id = self._require_profile(ctx)
        async with self._profile_lock(profile_id):
            profile, character = await self._load(profile_id)
            run = self._engine.load_run(character.data, run_id)
            if run is None:
                raise NotFoundError("Run not found")
            targets = PatchTargets(
                profile_meta=profile.meta,
                character_data=character.data,
                character={"inventory": character.inventory},
            )
            choice = self._engine.apply_choice(run, node_id, choice_id, targets, catalog=self._store)
            inventory = targets.character.get("inventory")
            character.inventory = inventory if isinstance(inventory, list) else [{"items": []}]
            self._engine.save_run(character.data, run)
            await self._persist(profile, character)
        logger.info(
            "Trek choose run=%s node=%s choice=%s traceId=%s", run.id, node_id, choice_id, ctx.trace_id or ""
        )

        if self._notifier is not None:
            inventory_ops = await asyncio.to_thread(inventory_ops_from_patches, choice.effects, self._store)
            if inventory_ops:
                self._notifier.notify(
                    character.id,
                    inventory_ops,
                    reason="trek.choice",
                    source="trek.service.choose",
                )
        return TrekStateResult(run_id=run.id, state=self._engine.project(run))
