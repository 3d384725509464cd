"""Каналы push-уведомлений клиенту (HTTP push-шлюз или Redis pub/sub)."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from uuid import uuid4

import httpx
import redis.asyncio as redis

logger = logging.getLogger(__name__)

_FAKE_SERVER: Optional[object] = None


class HttpClientChannel:
    """Минимальный HTTP-клиент push-шлюза: POST события в канал персонажа."""

    def __init__(self, base_url: str, timeout: float = 5.0, client: httpx.AsyncClient | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def emit(self, character_id: str, event_type: str, payload: dict[str, Any]) -> None:
        body = {
            "characterId": character_id,
            "eventType": event_type,
            "payload": payload,
        }
        url = f"{self._base_url}/v1/characters/{character_id}/events"
        resp = await self._client.post(url, json=body)
        resp.raise_for_status()

    async def close(self) -> None:
        await self._client.aclose()


class RedisFactory:
    """Lazy Redis connector with optional fakeredis backend."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._client: redis.Redis | None = None

    async def get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = await self._build_client()
        return self._client

    async def close(self) -> None:
        if self._client:
            try:
                await self._client.aclose()
            except Exception:
                logger.debug("Failed to close redis client", exc_info=True)
            self._client = None

    async def _build_client(self) -> redis.Redis:
        if self._url.startswith("fakeredis://"):
            import fakeredis
            import fakeredis.aioredis

            global _FAKE_SERVER
            if _FAKE_SERVER is None:
                _FAKE_SERVER = fakeredis.FakeServer()
            return fakeredis.aioredis.FakeRedis(server=_FAKE_SERVER, decode_responses=True)
        return redis.from_url(self._url, decode_responses=True)


class RedisClientChannel:
    """Publishes client events to `character:<id>` channels."""

    def __init__(self, redis_url: str) -> None:
        self._redis_factory = RedisFactory(redis_url)
        self._node_id = uuid4().hex

    @staticmethod
    def channel_for(character_id: str) -> str:
        return f"character:{character_id}"

    async def get_client(self) -> redis.Redis:
        return await self._redis_factory.get_client()

    async def emit(self, character_id: str, event_type: str, payload: dict[str, Any]) -> None:
        channel = self.channel_for(character_id)
        envelope = {"eventType": event_type, "payload": payload, "channel": channel}
        client = await self._redis_factory.get_client()
        await client.publish(channel, json.dumps({"origin": self._node_id, "message": envelope}))

    async def close(self) -> None:
        await self._redis_factory.close()
