"""Мини-DSL патчей (set/unset/inc/push/merge/pull) над вложенными JSON-документами.

Ключ задаётся путём через точку: сегменты адресуют ключи словаря или индексы списка
(`inventory.0.items`). Патчи мутируют цель на месте; неизвестные операции и
битые пути молча игнорируются, исключения наружу не выходят.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List

from .models import PatchOp

logger = logging.getLogger(__name__)

_MISSING = object()


def _split(key: str) -> List[str]:
    return [part for part in str(key or "").split(".") if part]


def _child(container: Any, segment: str) -> Any:
    if isinstance(container, dict):
        return container.get(segment, _MISSING)
    if isinstance(container, list) and segment.isdigit():
        index = int(segment)
        if index < len(container):
            return container[index]
    return _MISSING


def _assign(container: Any, segment: str, value: Any) -> bool:
    if isinstance(container, dict):
        container[segment] = value
        return True
    if isinstance(container, list) and segment.isdigit():
        index = int(segment)
        if index >= len(container):
            container.extend([None] * (index + 1 - len(container)))
        container[index] = value
        return True
    return False


def get_path(target: Any, key: str, default: Any = None) -> Any:
    """Читает значение по пути; `default`, если путь не существует."""

    node = target
    for segment in _split(key):
        node = _child(node, segment)
        if node is _MISSING:
            return default
    return node


def set_path(target: Any, key: str, value: Any) -> bool:
    """Записывает значение по пути, создавая промежуточные контейнеры."""

    parts = _split(key)
    if not parts:
        return False
    node = target
    for position, segment in enumerate(parts[:-1]):
        child = _child(node, segment)
        if not isinstance(child, (dict, list)):
            child = [] if parts[position + 1].isdigit() else {}
            if not _assign(node, segment, child):
                return False
        node = child
    return _assign(node, parts[-1], value)


def _unset(target: Any, key: str) -> None:
    parts = _split(key)
    if not parts:
        return
    parent = get_path(target, ".".join(parts[:-1])) if len(parts) > 1 else target
    last = parts[-1]
    if isinstance(parent, dict):
        parent.pop(last, None)
    elif isinstance(parent, list) and last.isdigit() and int(last) < len(parent):
        del parent[int(last)]


def _as_number(value: Any) -> float | int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def _matches(element: Any, probe: Any) -> bool:
    if isinstance(probe, dict):
        return isinstance(element, dict) and all(element.get(k) == v for k, v in probe.items())
    return element == probe


def apply_patch_ops(target: Any, ops: Iterable[PatchOp]) -> None:
    """Применяет операции к `target` на месте.

    Args:
        target: изменяемый документ (dict/list).
        ops: последовательность операций патча.
    """

    for op in ops:
        kind = op.op
        if not op.key:
            continue
        if kind == "set":
            set_path(target, op.key, op.value)
        elif kind == "unset":
            _unset(target, op.key)
        elif kind == "inc":
            current = _as_number(get_path(target, op.key))
            set_path(target, op.key, current + _as_number(op.value))
        elif kind == "push":
            current = get_path(target, op.key)
            items = current if isinstance(current, list) else []
            items.append(op.value)
            set_path(target, op.key, items)
        elif kind == "merge":
            current = get_path(target, op.key)
            base = current if isinstance(current, dict) else {}
            extra = op.value if isinstance(op.value, dict) else {}
            set_path(target, op.key, {**base, **extra})
        elif kind == "pull":
            current = get_path(target, op.key)
            if isinstance(current, list):
                for index, element in enumerate(current):
                    if _matches(element, op.value):
                        del current[index]
                        break
        else:
            logger.debug("Skipping unknown patch op %r at %s", kind, op.key)
