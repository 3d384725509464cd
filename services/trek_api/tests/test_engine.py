from __future__ import annotations

from datetime import timedelta

import pytest

from rpg_trek_api.data import InMemoryDataStore
from rpg_trek_api.trek import BusyError, NodeNotOpenError, NotFoundError, PatchTargets, TrekEngine, prune_run
from rpg_trek_api.trek.definitions import DEFAULT_DEFINITION
from rpg_trek_api.trek.rng import hash_to_uint32


def _targets(data: dict | None = None) -> PatchTargets:
    return PatchTargets(
        profile_meta={},
        character_data=data if data is not None else {},
        character={"inventory": [{"items": []}]},
    )


def _start(engine: TrekEngine, data: dict):
    definition = next(iter(engine.definitions.values()))
    run, _ = engine.ensure_run(data, definition, profile_id="profile-1", character_id="character-1")
    return run, definition


def test_ensure_run_creates_once_and_stores_layout(make_engine, clock) -> None:
    engine = make_engine()
    data: dict = {}

    run, created = engine.ensure_run(
        data, DEFAULT_DEFINITION, profile_id="profile-1", character_id="character-1"
    )
    again, created_again = engine.ensure_run(
        data, DEFAULT_DEFINITION, profile_id="profile-1", character_id="character-1"
    )

    assert created is True and created_again is False
    assert again.id == run.id
    assert data["modes"]["trek"]["activeRunId"] == run.id
    assert data["modes"]["trek"]["runs"][run.id]["rngState"] == hash_to_uint32(run.seed)
    assert run.seed == f"profile-1:character-1:{int(clock().timestamp() * 1000)}"
    assert run.step_index == 0 and run.open_node_id is None


def test_malformed_stored_run_is_replaced(make_engine) -> None:
    engine = make_engine()
    data = {"modes": {"trek": {"activeRunId": "run_bad", "runs": {"run_bad": {"id": "run_bad", "rngState": -5}}}}}

    run, created = engine.ensure_run(
        data, DEFAULT_DEFINITION, profile_id="profile-1", character_id="character-1"
    )

    assert created is True
    assert run.id != "run_bad"
    assert data["modes"]["trek"]["activeRunId"] == run.id
    stored = engine.active_run(data)
    assert stored is not None and stored.to_record() == run.to_record()


def test_generate_next_opens_node_and_starts_busy_window(make_engine, clock) -> None:
    engine = make_engine("dialog")
    data: dict = {}
    run, definition = _start(engine, data)
    rng_before = run.rng_state

    assert engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1") is True

    assert run.open_node_id in run.nodes
    assert run.step_index == 1
    assert run.rng_state != rng_before
    assert run.busy_until == clock() + timedelta(milliseconds=3000)
    assert [h.node_id for h in run.history] == [run.open_node_id]


def test_generate_next_is_idempotent_while_node_open(make_engine, clock) -> None:
    engine = make_engine("dialog")
    run, definition = _start(engine, {})
    engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1")
    snapshot = run.model_copy(deep=True)

    with pytest.raises(BusyError) as excinfo:
        engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1")
    assert excinfo.value.busy_ms == 3000

    clock.advance(3000)
    assert engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1") is False
    assert run.to_record() == snapshot.to_record()


def test_apply_choice_checks_before_mutating(make_engine, clock) -> None:
    engine = make_engine("npc")
    run, definition = _start(engine, {})
    engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1")
    node_id = run.open_node_id
    targets = _targets()

    with pytest.raises(BusyError):
        engine.apply_choice(run, node_id, "talk", targets)
    clock.advance(3000)
    with pytest.raises(NodeNotOpenError):
        engine.apply_choice(run, "node_other", "talk", targets)
    with pytest.raises(NotFoundError):
        engine.apply_choice(run, node_id, "dance", targets)

    assert run.open_node_id == node_id
    assert targets.profile_meta == {}


def test_npc_choice_updates_reputation_and_closes_node(make_engine, clock) -> None:
    engine = make_engine("npc")
    run, definition = _start(engine, {})
    engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1")
    node_id = run.open_node_id
    targets = _targets()
    clock.advance(3000)

    choice = engine.apply_choice(run, node_id, "talk", targets)

    assert choice.id == "talk"
    assert targets.profile_meta == {"reputation": {"npc": {"traveler": 1}}}
    assert run.open_node_id is None
    assert run.history[-1].chosen_choice_id == "talk"
    assert run.busy_until == clock() + timedelta(milliseconds=3000)
    with pytest.raises(NodeNotOpenError):
        clock.advance(3000)
        engine.apply_choice(run, node_id, "talk", targets)


def test_reward_claim_resolves_item_key_through_catalog(make_engine, clock) -> None:
    catalog = InMemoryDataStore()
    item = catalog.upsert_item(key="runic-bag", name="Runic Bag")
    engine = make_engine("reward")
    data: dict = {}
    run, definition = _start(engine, data)
    engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1")
    targets = _targets(data)
    clock.advance(3000)

    engine.apply_choice(run, run.open_node_id, "claim", targets, catalog=catalog)

    assert targets.character["inventory"][0]["items"] == [{"itemId": item.id, "x": 1, "y": 1}]
    assert data["modes"]["trek"]["lastGrantDate"]


def test_unknown_item_is_dropped_but_other_effects_apply(make_engine, clock) -> None:
    engine = make_engine("reward")
    data: dict = {}
    run, definition = _start(engine, data)
    engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1")
    targets = _targets(data)
    clock.advance(3000)

    engine.apply_choice(run, run.open_node_id, "claim", targets, catalog=InMemoryDataStore())

    assert targets.character["inventory"][0]["items"] == []
    assert "lastGrantDate" in data["modes"]["trek"]


def test_battle_fight_sets_active_encounter(make_engine, clock) -> None:
    engine = make_engine("battle")
    data: dict = {}
    run, definition = _start(engine, data)
    engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1")
    clock.advance(3000)

    choice = engine.apply_choice(run, run.open_node_id, "fight", _targets(data))

    encounter = data["modes"]["trek"]["activeEncounter"]
    assert encounter["kind"] == "battle"
    assert encounter["difficulty"] == 1
    assert choice.opens is not None and encounter["refId"] == choice.opens.ref_id


def test_history_is_pruned_with_unreferenced_nodes(make_engine, clock) -> None:
    engine = make_engine("dialog", history_limit=3)
    run, definition = _start(engine, {})

    for _ in range(5):
        engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1")
        clock.advance(3000)
        engine.apply_choice(run, run.open_node_id, "push", _targets())
        clock.advance(3000)

    assert run.step_index == 5
    assert len(run.history) == 3
    assert set(run.nodes) == {h.node_id for h in run.history}


def test_prune_keeps_open_node_outside_retained_history(make_engine) -> None:
    engine = make_engine("dialog", busy_ms=0)
    run, definition = _start(engine, {})
    for _ in range(3):
        engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1")
        engine.apply_choice(run, run.open_node_id, "rest", _targets())
    engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1")
    oldest, newest = run.history[0].node_id, run.history[-1].node_id
    run.open_node_id = oldest

    prune_run(run, max_history=1)

    assert [h.node_id for h in run.history] == [newest]
    assert set(run.nodes) == {oldest, newest}


def test_same_seed_gives_same_node_types(clock) -> None:
    def walk() -> list[str]:
        engine = TrekEngine({DEFAULT_DEFINITION.key: DEFAULT_DEFINITION}, busy_ms=0, clock=clock)
        run, definition = _start(engine, {})
        types = []
        for _ in range(20):
            engine.generate_next(run, definition, profile_id="profile-1", character_id="character-1")
            node = run.nodes[run.open_node_id]
            types.append(node.node_type)
            engine.apply_choice(run, node.id, node.choices[-1].id, _targets())
        return types

    assert walk() == walk()


def test_unknown_definition_is_not_found(make_engine) -> None:
    with pytest.raises(NotFoundError):
        make_engine().get_definition("trek.nowhere")
