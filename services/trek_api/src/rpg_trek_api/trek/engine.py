"""Стейт-машина забега трека.

Состояния: READY (нет открытого узла), AWAIT_CHOICE (узел открыт) и
производное BUSY (активно окно занятости). Переходы:
READY --generate_next--> AWAIT_CHOICE --apply_choice--> READY; каждый
переход открывает окно занятости. Окно задаёт темп для клиента, а не лок.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple, assert_never

from pydantic import ValidationError

from .definitions import TrekDefinition
from .errors import BusyError, NodeNotOpenError, NotFoundError
from .models import (
    CharacterDataPatch,
    CharacterInventoryPatch,
    HistoryEntry,
    PatchOp,
    ProfileMetaPatch,
    TrekChoice,
    TrekRun,
    TrekUiState,
)
from .nodes import INVENTORY_ITEMS_KEY, TREK_ROOT_KEY, compile_node, new_id
from .patches import apply_patch_ops, get_path, set_path
from .rng import XorShift32, hash_to_uint32, pick_weighted
from .view import busy_ms_remaining, run_to_ui_state

logger = logging.getLogger(__name__)

ACTIVE_RUN_ID_KEY = f"{TREK_ROOT_KEY}.activeRunId"
DEFAULT_BUSY_MS = 3000
DEFAULT_HISTORY_LIMIT = 100


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def run_key(run_id: str) -> str:
    return f"{TREK_ROOT_KEY}.runs.{run_id}"


class ItemCatalog(Protocol):
    def resolve_item_id(self, item_key: str) -> Optional[str]: ...


@dataclass
class PatchTargets:
    """Документы, к которым применяются эффекты выбора.

    `character` это обёртка вида `{"inventory": [...]}`, чтобы пути
    инвентаря (`inventory.0.items`) адресовались так же, как в документе персонажа.
    """

    profile_meta: Dict[str, Any]
    character_data: Dict[str, Any]
    character: Dict[str, Any]


def prune_run(run: TrekRun, max_history: int = DEFAULT_HISTORY_LIMIT) -> None:
    """Ограничивает историю и выбрасывает узлы, на которые никто не ссылается.

    Открытый узел и узлы из сохранённой истории не удаляются никогда.
    """

    run.history = run.history[-max_history:] if max_history > 0 else []
    keep = {entry.node_id for entry in run.history}
    if run.open_node_id:
        keep.add(run.open_node_id)
    run.nodes = {node_id: node for node_id, node in run.nodes.items() if node_id in keep}


def _normalize_inventory_ops(ops: List[PatchOp], catalog: ItemCatalog | None) -> List[PatchOp]:
    """`push/pull {itemKey}` -> `{itemId}` через каталог; неизвестные предметы выбрасываются."""

    if catalog is None:
        return list(ops)
    normalized: List[PatchOp] = []
    for op in ops:
        value = op.value
        if (
            op.op not in ("push", "pull")
            or not op.key.startswith(INVENTORY_ITEMS_KEY)
            or not isinstance(value, dict)
            or value.get("itemId")
            or not value.get("itemKey")
        ):
            normalized.append(op)
            continue
        item_id = catalog.resolve_item_id(value["itemKey"])
        if not item_id:
            logger.warning("Unknown item key %s in inventory patch, skipping", value["itemKey"])
            continue
        if op.op == "pull":
            normalized.append(PatchOp(op="pull", key=op.key, value={"itemId": item_id}))
            continue
        item = {"itemId": item_id, "x": value.get("x", 1), "y": value.get("y", 1)}
        if value.get("meta") is not None:
            item["meta"] = value["meta"]
        normalized.append(PatchOp(op="push", key=op.key, value=item))
    return normalized


class TrekEngine:
    """Генерация узлов и применение выборов поверх типизированного `TrekRun`."""

    def __init__(
        self,
        definitions: Mapping[str, TrekDefinition],
        *,
        busy_ms: int = DEFAULT_BUSY_MS,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._definitions = definitions
        self._busy = timedelta(milliseconds=busy_ms)
        self._history_limit = history_limit
        self._clock = clock

    @property
    def definitions(self) -> Mapping[str, TrekDefinition]:
        return self._definitions

    def now(self) -> datetime:
        return self._clock()

    def get_definition(self, def_key: str) -> TrekDefinition:
        definition = self._definitions.get(def_key)
        if definition is None:
            raise NotFoundError(f"Unknown trek defKey: {def_key}")
        return definition

    # Storage layout inside character.data
    def load_run(self, data: Dict[str, Any], run_id: str) -> TrekRun | None:
        raw = get_path(data, run_key(run_id))
        if not isinstance(raw, dict) or not raw.get("id"):
            return None
        try:
            return TrekRun.model_validate(raw)
        except ValidationError:
            logger.warning("Stored trek run %s is malformed, ignoring it", run_id, exc_info=True)
            return None

    def active_run(self, data: Dict[str, Any]) -> TrekRun | None:
        run_id = get_path(data, ACTIVE_RUN_ID_KEY)
        if not run_id:
            return None
        return self.load_run(data, str(run_id))

    def save_run(self, data: Dict[str, Any], run: TrekRun) -> None:
        set_path(data, run_key(run.id), run.to_record())

    def ensure_run(
        self,
        data: Dict[str, Any],
        definition: TrekDefinition,
        *,
        profile_id: str,
        character_id: str,
    ) -> Tuple[TrekRun, bool]:
        """Возвращает активный забег, создавая его при отсутствии.

        Returns:
            (run, created): `created=True`, если забег только что создан.
        """

        run = self.active_run(data)
        if run is not None:
            return run, False
        now = self._clock()
        seed = f"{profile_id}:{character_id}:{int(now.timestamp() * 1000)}"
        run = TrekRun(id=new_id("run"), def_key=definition.key, seed=seed, rng_state=hash_to_uint32(seed))
        set_path(data, ACTIVE_RUN_ID_KEY, run.id)
        self.save_run(data, run)
        logger.info("Created trek run %s (defKey=%s, character=%s)", run.id, definition.key, character_id)
        return run, True

    # Busy window
    def busy_ms(self, run: TrekRun) -> int:
        return busy_ms_remaining(run, self._clock())

    def assert_not_busy(self, run: TrekRun) -> None:
        remaining = self.busy_ms(run)
        if remaining > 0:
            raise BusyError(remaining)

    def _set_busy(self, run: TrekRun) -> None:
        run.busy_until = self._clock() + self._busy

    # Transitions
    def generate_next(
        self,
        run: TrekRun,
        definition: TrekDefinition,
        *,
        profile_id: str,
        character_id: str,
    ) -> bool:
        """Открывает новый узел, если открытого нет.

        Returns:
            bool: `False`, если узел уже был открыт и состояние не менялось.

        Raises:
            BusyError: окно занятости не истекло.
        """

        self.assert_not_busy(run)
        if run.open_node_id:
            return False

        rng = XorShift32(run.rng_state)
        node_type = pick_weighted(rng.next, definition.node_type_weights)
        run.rng_state = rng.state

        now = self._clock()
        node = compile_node(
            node_id=new_id("node"),
            node_type=node_type,
            step_index=run.step_index,
            definition=definition,
            character_id=character_id,
            profile_id=profile_id,
            now=now,
        )
        run.nodes[node.id] = node
        run.open_node_id = node.id
        run.step_index += 1
        run.history.append(HistoryEntry(node_id=node.id, at=now))

        prune_run(run, self._history_limit)
        self._set_busy(run)
        logger.debug("Run %s opened node %s (%s) at step %s", run.id, node.id, node_type, run.step_index)
        return True

    def apply_choice(
        self,
        run: TrekRun,
        node_id: str,
        choice_id: str,
        targets: PatchTargets,
        catalog: ItemCatalog | None = None,
    ) -> TrekChoice:
        """Применяет эффекты выбора открытого узла и закрывает узел.

        Все проверки выполняются до первой мутации.

        Raises:
            BusyError: окно занятости не истекло.
            NodeNotOpenError: `node_id` не совпадает с открытым узлом.
            NotFoundError: узел или выбор не найдены.
        """

        self.assert_not_busy(run)
        if run.open_node_id != node_id:
            raise NodeNotOpenError("Node is not open")
        node = run.nodes.get(node_id)
        if node is None:
            raise NotFoundError(f"Node {node_id} not found")
        choice = node.find_choice(choice_id)
        if choice is None:
            raise NotFoundError(f"Choice {choice_id} not found")

        for patch in choice.effects:
            if isinstance(patch, ProfileMetaPatch):
                apply_patch_ops(targets.profile_meta, patch.ops)
            elif isinstance(patch, CharacterDataPatch):
                apply_patch_ops(targets.character_data, patch.ops)
            elif isinstance(patch, CharacterInventoryPatch):
                apply_patch_ops(targets.character, _normalize_inventory_ops(patch.ops, catalog))
            else:
                assert_never(patch)

        run.open_node_id = None
        for entry in reversed(run.history):
            if entry.node_id == node_id:
                entry.chosen_choice_id = choice_id
                break

        prune_run(run, self._history_limit)
        self._set_busy(run)
        logger.debug("Run %s resolved node %s with choice %s", run.id, node_id, choice_id)
        return choice

    def project(self, run: TrekRun) -> TrekUiState:
        return run_to_ui_state(run, now=self._clock())
