from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import typer

from .config import get_settings
from .data import InMemoryDataStore
from .jwt_utils import issue_access_token
from .trek import TrekContext, TrekEngine, TrekService, load_definitions

app = typer.Typer(help="Trek API CLI")


class _ManualClock:
    """Часы для офлайн-прогона: время двигается только вручную."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, milliseconds: int) -> None:
        self.current += timedelta(milliseconds=milliseconds)


@app.command("definitions")
def list_definitions(path: Optional[Path] = typer.Option(None, help="Каталог с *.yaml определениями")) -> None:
    """Показать доступные определения треков и веса типов узлов."""

    for definition in load_definitions(path).values():
        weights = ", ".join(f"{o.value}={o.weight:g}" for o in definition.node_type_weights)
        items = ", ".join(definition.grantable_items) or "-"
        typer.echo(f"{definition.key}: {definition.name} [{weights}] items: {items}")


@app.command()
def simulate(
    steps: int = typer.Option(5, min=1, help="Сколько остановок пройти"),
    def_key: str = typer.Option("trek.default", "--def-key", help="Определение трека"),
    choice_index: int = typer.Option(0, min=0, help="Индекс выбора на каждом узле (обрезается по числу выборов)"),
    path: Optional[Path] = typer.Option(None, help="Каталог с *.yaml определениями"),
    as_json: bool = typer.Option(False, "--json", help="Вывести итоговый забег как JSON"),
) -> None:
    """Прогнать трек офлайн на in-memory хранилище с ручными часами."""

    definitions = load_definitions(path)
    if def_key not in definitions:
        typer.echo(f"Unknown trek defKey: {def_key}", err=True)
        raise typer.Exit(code=1)

    busy_ms = 3000
    clock = _ManualClock(datetime(2024, 1, 1, tzinfo=UTC))
    engine = TrekEngine(definitions, busy_ms=busy_ms, clock=clock)
    store = InMemoryDataStore()
    for definition in definitions.values():
        for item_key in definition.grantable_items:
            store.upsert_item(key=item_key, name=item_key)
    profile = store.create_profile(display_name="Simulator", profile_id="sim-profile")
    store.create_character(profile_id=profile.id, name="Wanderer", character_id="sim-character")
    service = TrekService(store, engine, default_def_key=def_key)
    ctx = TrekContext(profile_id=profile.id, trace_id="cli-simulate")

    async def _run() -> dict[str, Any]:
        result = None
        for _ in range(steps):
            result = await service.next_stop(ctx, def_key)
            node = result.run.nodes[result.open_node_id]
            choice = node.choices[min(choice_index, len(node.choices) - 1)]
            clock.advance(busy_ms)
            await service.choose(ctx, run_id=result.run_id, node_id=node.id, choice_id=choice.id)
            clock.advance(busy_ms)
            typer.echo(f"#{result.run.step_index} {node.node_type}: {node.presentation.text} -> {choice.id}")
        character = store.list_characters(profile_id=profile.id)[0]
        return {
            "runId": result.run_id if result else None,
            "profileMeta": store.get_profile(profile.id).meta,
            "characterData": character.data,
            "inventory": character.inventory,
        }

    snapshot = asyncio.run(_run())
    if as_json:
        typer.echo(json.dumps(snapshot, indent=2, ensure_ascii=False))


@app.command()
def issue_token(profile_id: str) -> None:
    """Выпустить access token для профиля (нужен JWT_SECRET в окружении)."""

    token, ttl = issue_access_token(settings=get_settings(), profile_id=profile_id)
    typer.echo(json.dumps({"accessToken": token, "expiresIn": ttl}))


def main() -> None:  # pragma: no cover - CLI entry
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
