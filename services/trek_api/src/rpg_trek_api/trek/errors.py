"""Ошибки трека. `NotFoundError` берётся из слоя данных."""

from __future__ import annotations

from ..data import NotFoundError


class TrekError(RuntimeError):
    """Базовая ошибка трека."""


class UnauthorizedError(TrekError):
    """Вызов без аутентифицированного профиля."""


class BusyError(TrekError):
    """Окно занятости ещё не истекло; клиенту стоит повторить через `busy_ms`."""

    def __init__(self, busy_ms: int) -> None:
        super().__init__(f"BUSY ({busy_ms}ms remaining)")
        self.busy_ms = busy_ms


class NodeNotOpenError(TrekError):
    """Клиент ссылается не на тот узел, что сейчас открыт (рассинхронизация)."""


__all__ = ["BusyError", "NodeNotOpenError", "NotFoundError", "TrekError", "UnauthorizedError"]
