"""Inventory sync: detect inventory effects of a choice and hint the client.

The push is fire-and-forget: it runs as a detached task after the state is
saved, its errors are only logged and never reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, List, Protocol, Set

from .engine import ItemCatalog
from .models import CharacterInventoryPatch, InventorySyncOp, SyncCharacterInventoryPayload
from .nodes import INVENTORY_ITEMS_KEY

logger = logging.getLogger(__name__)

SYNC_EVENT_TYPE = "syncCharacterInventory"


class ClientChannel(Protocol):
    async def emit(self, character_id: str, event_type: str, payload: dict[str, Any]) -> None: ...


def inventory_ops_from_patches(patches: Iterable[Any], catalog: ItemCatalog | None = None) -> List[InventorySyncOp]:
    """Collects `add`/`remove` ops from inventory patches (`push`/`pull` on inventory items).

    With a catalog, items it cannot resolve are skipped: the engine drops them too,
    so the hint only describes changes that were actually applied.
    """

    ops: List[InventorySyncOp] = []
    for patch in patches or []:
        if not isinstance(patch, CharacterInventoryPatch):
            continue
        for op in patch.ops:
            if not str(op.key or "").startswith(INVENTORY_ITEMS_KEY):
                continue
            item_key = op.value.get("itemKey") if isinstance(op.value, dict) else None
            if not item_key:
                continue
            if catalog is not None and not catalog.resolve_item_id(item_key):
                continue
            if op.op == "push":
                ops.append(InventorySyncOp(op="add", item_key=item_key, qty=1))
            elif op.op == "pull":
                ops.append(InventorySyncOp(op="remove", item_key=item_key, qty=1))
    return ops


class InventorySyncNotifier:
    """Dispatches `syncCharacterInventory` hints over a client channel."""

    def __init__(self, channel: ClientChannel, *, timeout_seconds: float = 2.0) -> None:
        self._channel = channel
        self._timeout = timeout_seconds
        self._pending: Set[asyncio.Task[None]] = set()

    def notify(
        self,
        character_id: str,
        ops: List[InventorySyncOp],
        *,
        reason: str,
        source: str,
    ) -> asyncio.Task[None] | None:
        if not ops:
            return None
        payload = SyncCharacterInventoryPayload(
            character_id=character_id,
            mode="patch",
            ops=ops,
            reason=reason,
            source=source,
        )
        task = asyncio.create_task(self._deliver(payload), name=f"inventory-sync-{character_id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, payload: SyncCharacterInventoryPayload) -> None:
        body = payload.model_dump(by_alias=True, mode="json", exclude_none=True)
        try:
            await asyncio.wait_for(
                self._channel.emit(payload.character_id, SYNC_EVENT_TYPE, body),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Inventory sync push timed out for character=%s", payload.character_id)
        except Exception as exc:
            logger.warning("Inventory sync push failed for character=%s: %s", payload.character_id, exc)

    async def drain(self) -> None:
        """Waits for in-flight pushes (shutdown, tests)."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
