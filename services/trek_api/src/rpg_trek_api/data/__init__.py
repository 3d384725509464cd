"""Слой данных Trek API (in-memory по умолчанию)."""

from .store import (
    CharacterRecord,
    DataStoreError,
    DataStoreProtocol,
    InMemoryDataStore,
    ItemRecord,
    NotFoundError,
    PostgresDataStore,
    ProfileRecord,
)

__all__ = [
    "CharacterRecord",
    "DataStoreError",
    "DataStoreProtocol",
    "InMemoryDataStore",
    "ItemRecord",
    "NotFoundError",
    "PostgresDataStore",
    "ProfileRecord",
]
