"""Хранилище профилей, персонажей и каталога предметов (in-memory или Postgres).

Трек хранит своё состояние внутри непрозрачного JSON `character.data`,
поэтому хранилищу достаточно уметь читать и атомарно сохранять документы
`profile.meta`, `character.data` и `character.inventory`.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class ProfileRecord:
    id: str
    display_name: str
    meta: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class CharacterRecord:
    id: str
    profile_id: str
    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    inventory: List[Dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass
class ItemRecord:
    id: str
    key: str
    name: str


class DataStoreProtocol(Protocol):
    """Протокол для хранилища (in-memory или Postgres)."""

    def create_profile(
        self, *, display_name: str, meta: Optional[Dict[str, Any]] = None, profile_id: Optional[str] = None
    ) -> ProfileRecord: ...
    def get_profile(self, profile_id: str) -> ProfileRecord: ...

    def create_character(
        self,
        *,
        profile_id: str,
        name: str,
        data: Optional[Dict[str, Any]] = None,
        inventory: Optional[List[Dict[str, Any]]] = None,
        character_id: Optional[str] = None,
    ) -> CharacterRecord: ...
    def list_characters(self, *, profile_id: str) -> List[CharacterRecord]: ...
    def get_character(self, character_id: str) -> CharacterRecord: ...

    def upsert_item(self, *, key: str, name: str) -> ItemRecord: ...
    def resolve_item_id(self, item_key: str) -> Optional[str]: ...

    def save_profile_and_character(self, profile: ProfileRecord, character: CharacterRecord) -> None: ...


class DataStoreError(RuntimeError):
    """Общее исключение слоя данных."""


class NotFoundError(DataStoreError):
    """Запрашиваемая сущность не найдена."""


class InMemoryDataStore:
    """In-memory реализация для тестов и dev.

    Отдаёт и принимает копии, чтобы поведение совпадало с «прочитал, изменил,
    сохранил» у настоящей БД: незасейвленные мутации не видны другим вызовам.
    """

    def __init__(self) -> None:
        self.profiles: Dict[str, ProfileRecord] = {}
        self.characters: Dict[str, CharacterRecord] = {}
        self.items: Dict[str, ItemRecord] = {}

    # Profiles
    def create_profile(
        self, *, display_name: str, meta: Optional[Dict[str, Any]] = None, profile_id: Optional[str] = None
    ) -> ProfileRecord:
        record = ProfileRecord(id=profile_id or uuid4().hex, display_name=display_name, meta=meta or {})
        self.profiles[record.id] = record
        return copy.deepcopy(record)

    def get_profile(self, profile_id: str) -> ProfileRecord:
        try:
            return copy.deepcopy(self.profiles[profile_id])
        except KeyError as exc:
            raise NotFoundError(f"Profile {profile_id} not found") from exc

    # Characters
    def create_character(
        self,
        *,
        profile_id: str,
        name: str,
        data: Optional[Dict[str, Any]] = None,
        inventory: Optional[List[Dict[str, Any]]] = None,
        character_id: Optional[str] = None,
    ) -> CharacterRecord:
        self.get_profile(profile_id)  # ensure exists
        record = CharacterRecord(
            id=character_id or uuid4().hex,
            profile_id=profile_id,
            name=name,
            data=data or {},
            inventory=inventory or [],
        )
        self.characters[record.id] = record
        return copy.deepcopy(record)

    def list_characters(self, *, profile_id: str) -> List[CharacterRecord]:
        ordered = sorted(
            (c for c in self.characters.values() if c.profile_id == profile_id),
            key=lambda c: c.created_at,
        )
        return [copy.deepcopy(c) for c in ordered]

    def get_character(self, character_id: str) -> CharacterRecord:
        try:
            return copy.deepcopy(self.characters[character_id])
        except KeyError as exc:
            raise NotFoundError(f"Character {character_id} not found") from exc

    # Item catalog
    def upsert_item(self, *, key: str, name: str) -> ItemRecord:
        existing = self.items.get(key)
        if existing:
            existing.name = name
            return existing
        record = ItemRecord(id=uuid4().hex, key=key, name=name)
        self.items[key] = record
        return record

    def resolve_item_id(self, item_key: str) -> Optional[str]:
        record = self.items.get(item_key)
        return record.id if record else None

    def save_profile_and_character(self, profile: ProfileRecord, character: CharacterRecord) -> None:
        if profile.id not in self.profiles:
            raise NotFoundError(f"Profile {profile.id} not found")
        if character.id not in self.characters:
            raise NotFoundError(f"Character {character.id} not found")
        character.updated_at = _utcnow()
        self.profiles[profile.id] = copy.deepcopy(profile)
        self.characters[character.id] = copy.deepcopy(character)


class PostgresDataStore:
    """Хранилище на Postgres: JSONB-документы, сохранение одной транзакцией."""

    def __init__(self, dsn: str) -> None:
        import psycopg
        from psycopg.types.json import Json

        self._psycopg = psycopg
        self._dsn = dsn
        self._json = Json
        self._ensure_schema()

    def _connect(self):
        return self._psycopg.connect(self._dsn, autocommit=True)

    def _ensure_schema(self) -> None:
        ddl = """
        create table if not exists profiles (
            id text primary key,
            display_name text not null,
            meta jsonb not null default '{}'::jsonb,
            created_at timestamptz not null default now()
        );
        create table if not exists characters (
            id text primary key,
            profile_id text not null references profiles(id) on delete cascade,
            name text not null,
            data jsonb not null default '{}'::jsonb,
            inventory jsonb not null default '[]'::jsonb,
            created_at timestamptz not null default now(),
            updated_at timestamptz not null default now()
        );
        create table if not exists items (
            id text primary key,
            key text unique not null,
            name text not null
        );
        """
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(ddl)

    # Profiles
    def create_profile(
        self, *, display_name: str, meta: Optional[Dict[str, Any]] = None, profile_id: Optional[str] = None
    ) -> ProfileRecord:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                insert into profiles (id, display_name, meta)
                values (%s, %s, %s)
                returning id, display_name, meta, created_at
                """,
                (profile_id or uuid4().hex, display_name, self._json(meta or {})),
            )
            row = cur.fetchone()
        return ProfileRecord(id=row[0], display_name=row[1], meta=row[2], created_at=row[3])

    def get_profile(self, profile_id: str) -> ProfileRecord:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute("select id, display_name, meta, created_at from profiles where id=%s", (profile_id,))
            row = cur.fetchone()
        if not row:
            raise NotFoundError(f"Profile {profile_id} not found")
        return ProfileRecord(id=row[0], display_name=row[1], meta=row[2] or {}, created_at=row[3])

    # Characters
    _CHARACTER_COLUMNS = "id, profile_id, name, data, inventory, created_at, updated_at"

    @staticmethod
    def _character_from_row(row) -> CharacterRecord:
        return CharacterRecord(
            id=row[0],
            profile_id=row[1],
            name=row[2],
            data=row[3] or {},
            inventory=row[4] or [],
            created_at=row[5],
            updated_at=row[6],
        )

    def create_character(
        self,
        *,
        profile_id: str,
        name: str,
        data: Optional[Dict[str, Any]] = None,
        inventory: Optional[List[Dict[str, Any]]] = None,
        character_id: Optional[str] = None,
    ) -> CharacterRecord:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                f"""
                insert into characters (id, profile_id, name, data, inventory)
                values (%s, %s, %s, %s, %s)
                returning {self._CHARACTER_COLUMNS}
                """,
                (character_id or uuid4().hex, profile_id, name, self._json(data or {}), self._json(inventory or [])),
            )
            row = cur.fetchone()
        return self._character_from_row(row)

    def list_characters(self, *, profile_id: str) -> List[CharacterRecord]:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                f"select {self._CHARACTER_COLUMNS} from characters where profile_id=%s order by created_at asc",
                (profile_id,),
            )
            rows = cur.fetchall()
        return [self._character_from_row(r) for r in rows]

    def get_character(self, character_id: str) -> CharacterRecord:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(f"select {self._CHARACTER_COLUMNS} from characters where id=%s", (character_id,))
            row = cur.fetchone()
        if not row:
            raise NotFoundError(f"Character {character_id} not found")
        return self._character_from_row(row)

    # Item catalog
    def upsert_item(self, *, key: str, name: str) -> ItemRecord:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                insert into items (id, key, name) values (%s, %s, %s)
                on conflict (key) do update set name = excluded.name
                returning id, key, name
                """,
                (uuid4().hex, key, name),
            )
            row = cur.fetchone()
        return ItemRecord(id=row[0], key=row[1], name=row[2])

    def resolve_item_id(self, item_key: str) -> Optional[str]:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute("select id from items where key=%s", (item_key,))
            row = cur.fetchone()
        return row[0] if row else None

    def save_profile_and_character(self, profile: ProfileRecord, character: CharacterRecord) -> None:
        with self._connect() as conn:
            with conn.transaction(), conn.cursor() as cur:
                cur.execute("update profiles set meta=%s where id=%s", (self._json(profile.meta), profile.id))
                if cur.rowcount == 0:
                    raise NotFoundError(f"Profile {profile.id} not found")
                cur.execute(
                    "update characters set data=%s, inventory=%s, updated_at=now() where id=%s",
                    (self._json(character.data), self._json(character.inventory), character.id),
                )
                if cur.rowcount == 0:
                    raise NotFoundError(f"Character {character.id} not found")
