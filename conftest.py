"""Pytest bootstrap: добавляет локальный src-каталог сервиса в `sys.path`.

Файл нужен для локального запуска тестов без установки пакета в окружение:
импорты `rpg_trek_api` разрешаются из `services/trek_api/src`.
"""

from __future__ import annotations

from pathlib import Path
import sys
from typing import Iterable


def _extend_sys_path(paths: Iterable[Path]) -> None:
    """Добавляет директории в начало `sys.path`, если их там ещё нет."""

    for p in paths:
        str_path = str(p)
        if str_path not in sys.path:
            sys.path.insert(0, str_path)


def _collect_src_paths(root: Path) -> list[Path]:
    candidates: list[Path] = [
        root / "services" / "trek_api" / "src",
    ]
    return [p for p in candidates if p.exists()]


# Выполняется при импортировании conftest
_extend_sys_path(_collect_src_paths(Path(__file__).parent.resolve()))
