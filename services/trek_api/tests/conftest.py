from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Callable, Iterator

import pytest

from rpg_trek_api.config import get_settings
from rpg_trek_api.data import InMemoryDataStore
from rpg_trek_api.trek import TrekDefinition, TrekEngine
from rpg_trek_api.trek.rng import WeightedOption

PROFILE_ID = "profile-1"
CHARACTER_ID = "character-1"


class ManualClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, milliseconds: int) -> None:
        self.current += timedelta(milliseconds=milliseconds)


@pytest.fixture(autouse=True)
def allow_in_memory_store(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Включаем in-memory fallback и тестовый JWT-секрет по умолчанию."""

    monkeypatch.setenv("DATABASE_FALLBACK_TO_MEMORY", "true")
    monkeypatch.setenv("JWT_SECRET", "test-secret-key-123456")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("TREK_NOTIFY_BASE_URL", raising=False)
    monkeypatch.delenv("TREK_NOTIFY_REDIS_URL", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2024, 5, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def make_definition() -> Callable[..., TrekDefinition]:
    """Определение, где выпадает только один тип узла."""

    def _make(node_type: str, *, key: str = "trek.default", **kwargs) -> TrekDefinition:
        kwargs.setdefault("grantable_items", ("runic-bag",))
        return TrekDefinition(key=key, name="Frost Pass", node_type_weights=(WeightedOption(1, node_type),), **kwargs)

    return _make


@pytest.fixture
def make_engine(clock: ManualClock, make_definition) -> Callable[..., TrekEngine]:
    def _make(node_type: str = "reward", **kwargs) -> TrekEngine:
        definition = make_definition(node_type)
        return TrekEngine({definition.key: definition}, clock=clock, **kwargs)

    return _make


@pytest.fixture
def store() -> InMemoryDataStore:
    data_store = InMemoryDataStore()
    data_store.upsert_item(key="runic-bag", name="Runic Bag")
    data_store.create_profile(display_name="Tester", profile_id=PROFILE_ID)
    data_store.create_character(profile_id=PROFILE_ID, name="Hero", character_id=CHARACTER_ID)
    return data_store
