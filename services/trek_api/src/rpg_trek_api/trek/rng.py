"""Детерминированный ГПСЧ и взвешенный выбор для генерации узлов трека."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar

T = TypeVar("T")

_MASK32 = 0xFFFFFFFF


def hash_to_uint32(text: str) -> int:
    """Стабильный 32-битный дайджест строки (первые 4 байта SHA-256, little-endian)."""

    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "little")


class XorShift32:
    """xorshift32 с единственным сохраняемым состоянием, 32-битным словом.

    Одинаковое состояние всегда даёт одинаковое следующее значение, поэтому
    последовательность переживает перезапуск процесса, если сохранять `state`.
    """

    def __init__(self, state: int) -> None:
        self._state = (state & _MASK32) or 1

    @property
    def state(self) -> int:
        return self._state

    def next(self) -> float:
        s = self._state
        s ^= (s << 13) & _MASK32
        s ^= s >> 17
        s ^= (s << 5) & _MASK32
        self._state = s
        return (s % 1_000_000) / 1_000_000


@dataclass(frozen=True)
class WeightedOption(Generic[T]):
    weight: float
    value: T


def pick_weighted(draw: Callable[[], float], options: Sequence[WeightedOption[T]]) -> T:
    """Выбирает значение по весам, потребляя ровно одно значение `draw()`.

    Raises:
        ValueError: если список вариантов пуст.
    """

    if not options:
        raise ValueError("pick_weighted requires at least one option")
    total = sum(option.weight for option in options)
    remainder = draw() * total
    for option in options:
        remainder -= option.weight
        if remainder <= 0:
            return option.value
    # дрейф плавающей точки
    return options[-1].value
