from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import pytest

from rpg_trek_api.data import InMemoryDataStore
from rpg_trek_api.notifications import RedisClientChannel
from rpg_trek_api.trek import InventorySyncNotifier, inventory_ops_from_patches
from rpg_trek_api.trek.models import (
    CharacterDataPatch,
    CharacterInventoryPatch,
    InventorySyncOp,
    PatchOp,
    ProfileMetaPatch,
)


class FailingChannel:
    async def emit(self, character_id: str, event_type: str, payload: dict[str, Any]) -> None:
        raise ConnectionError("push gateway down")


class SlowChannel:
    async def emit(self, character_id: str, event_type: str, payload: dict[str, Any]) -> None:
        await asyncio.sleep(1)


def test_inventory_ops_from_patches() -> None:
    patches = [
        CharacterInventoryPatch(
            entity_id="character-1",
            ops=[
                PatchOp(op="push", key="inventory.0.items", value={"itemKey": "runic-bag", "x": 1, "y": 1}),
                PatchOp(op="pull", key="inventory.0.items", value={"itemKey": "old-rope"}),
                PatchOp(op="push", key="inventory.0.items", value={"itemId": "already-resolved"}),
                PatchOp(op="set", key="inventory.0.items", value=[]),
            ],
        ),
        CharacterDataPatch(entity_id="character-1", ops=[PatchOp(op="push", key="log", value={"itemKey": "x"})]),
        ProfileMetaPatch(entity_id="profile-1", ops=[PatchOp(op="inc", key="reputation.npc.a", value=1)]),
    ]

    ops = inventory_ops_from_patches(patches)

    assert [(o.op, o.item_key, o.qty) for o in ops] == [("add", "runic-bag", 1), ("remove", "old-rope", 1)]


def test_catalog_filters_unresolved_items() -> None:
    catalog = InMemoryDataStore()
    catalog.upsert_item(key="runic-bag", name="Runic Bag")
    patch = CharacterInventoryPatch(
        entity_id="character-1",
        ops=[
            PatchOp(op="push", key="inventory.0.items", value={"itemKey": "runic-bag"}),
            PatchOp(op="push", key="inventory.0.items", value={"itemKey": "ghost-item"}),
        ],
    )

    ops = inventory_ops_from_patches([patch], catalog)

    assert [(o.op, o.item_key) for o in ops] == [("add", "runic-bag")]


def test_no_inventory_effects_means_no_ops() -> None:
    assert inventory_ops_from_patches([]) == []


@pytest.mark.asyncio
async def test_failed_push_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    notifier = InventorySyncNotifier(FailingChannel())

    with caplog.at_level(logging.WARNING):
        task = notifier.notify(
            "character-1", [InventorySyncOp(op="add", item_key="runic-bag")], reason="trek.choice", source="test"
        )
        await notifier.drain()

    assert task is not None and task.exception() is None
    assert "push gateway down" in caplog.text


@pytest.mark.asyncio
async def test_slow_push_times_out(caplog: pytest.LogCaptureFixture) -> None:
    notifier = InventorySyncNotifier(SlowChannel(), timeout_seconds=0.01)

    with caplog.at_level(logging.WARNING):
        notifier.notify("character-1", [InventorySyncOp(op="add", item_key="runic-bag")], reason="r", source="s")
        await notifier.drain()

    assert "timed out" in caplog.text


@pytest.mark.asyncio
async def test_empty_ops_are_not_sent() -> None:
    assert InventorySyncNotifier(FailingChannel()).notify("character-1", [], reason="r", source="s") is None


@pytest.mark.asyncio
async def test_redis_channel_publishes_to_character_channel() -> None:
    channel = RedisClientChannel("fakeredis://")
    client = await channel.get_client()
    pubsub = client.pubsub()
    await pubsub.subscribe(RedisClientChannel.channel_for("character-1"))
    notifier = InventorySyncNotifier(channel)

    notifier.notify(
        "character-1", [InventorySyncOp(op="remove", item_key="old-rope")], reason="trek.choice", source="t"
    )
    await notifier.drain()

    message = None
    for _ in range(10):
        message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.1)
        if message:
            break
    await pubsub.aclose()
    await channel.close()

    assert message is not None
    envelope = json.loads(message["data"])["message"]
    assert envelope["eventType"] == "syncCharacterInventory"
    assert envelope["channel"] == "character:character-1"
    assert envelope["payload"]["ops"] == [{"op": "remove", "itemKey": "old-rope", "qty": 1}]
