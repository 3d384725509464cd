"""Проекция забега во view-model для клиента (чистая функция, без сайд-эффектов)."""

from __future__ import annotations

import math
from datetime import datetime
from typing import List

from .models import TrekNode, TrekRun, TrekStatus, TrekUiChoice, TrekUiFeedItem, TrekUiState


def busy_ms_remaining(run: TrekRun, now: datetime) -> int:
    if run.busy_until is None:
        return 0
    remaining = (run.busy_until - now).total_seconds() * 1000
    return max(0, math.ceil(remaining))


def _feed_item(node: TrekNode, *, item_id: str, choice_id: str | None = None) -> TrekUiFeedItem:
    return TrekUiFeedItem(
        id=item_id,
        kind=node.node_type or "dialog",
        tone=node.node_type,
        title=node.presentation.title,
        text=node.presentation.text or "",
        node_id=node.id,
        choice_id=choice_id,
        created_date=node.created_date,
    )


def run_to_ui_state(run: TrekRun, now: datetime) -> TrekUiState:
    """Строит состояние UI: статус, ленту событий и доступные выборы."""

    busy_ms = busy_ms_remaining(run, now)
    open_node = run.nodes.get(run.open_node_id) if run.open_node_id else None

    feed: List[TrekUiFeedItem] = []
    for entry in run.history:
        node = run.nodes.get(entry.node_id)
        # открытый узел идёт последним элементом ленты
        if node is None or (open_node is not None and entry.node_id == open_node.id):
            continue
        feed.append(
            _feed_item(node, item_id=f"hist_{entry.node_id}_{entry.at.isoformat()}", choice_id=entry.chosen_choice_id)
        )
    if open_node is not None:
        feed.append(_feed_item(open_node, item_id=f"open_{open_node.id}"))

    choices = [
        TrekUiChoice(id=c.id, label=c.label, enabled=busy_ms <= 0, node_id=open_node.id, tags=list(c.tags))
        for c in (open_node.choices if open_node else [])
    ]

    if busy_ms > 0:
        status = TrekStatus.BUSY
    elif run.open_node_id:
        status = TrekStatus.AWAIT_CHOICE
    else:
        status = TrekStatus.READY

    return TrekUiState(
        stop_index=run.step_index,
        status=status,
        can_advance=not run.open_node_id and busy_ms <= 0,
        feed=feed,
        choices=choices,
        busy_ms=busy_ms,
    )
