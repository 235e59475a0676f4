import json
from pathlib import Path

import pytest

from duststorm.content.io import (
    is_canonical_save_payload,
    load_game_json,
    load_storm_simulation,
    load_world_json,
    save_game_json,
    save_world_json,
)
from duststorm.content.storms import StormConfig
from duststorm.sim.core import SimCommand, Simulation
from duststorm.sim.hash import save_hash, simulation_hash, world_hash
from duststorm.sim.storms import DustStormModule

MAP_PATH = "content/examples/basic_surfaces.json"


def _build_simulation(seed: int = 123) -> Simulation:
    simulation, _ = load_storm_simulation(MAP_PATH, seed=seed, config=StormConfig())
    simulation.append_command(
        SimCommand(
            tick=0,
            command_type="create_dust_storm",
            params={"surface_id": "nauvis", "intensity": 0.5, "duration": 600, "ramp_duration": 60},
        )
    )
    simulation.advance_ticks(45)
    return simulation


def test_map_template_loads_without_world_hash() -> None:
    world = load_world_json(MAP_PATH)

    assert sorted(world.surfaces) == ["nauvis", "vulcanus"]
    assert world.surfaces["vulcanus"].solar_power_multiplier == 4.0
    assert world.surfaces["vulcanus"].max_panels == 16
    assert len(world.panels_on_surface("nauvis")) == 12
    assert len(world.panels_on_surface("vulcanus")) == 2
    assert world.next_panel_counter == 15


def test_save_then_load_round_trip_matches_world_hash(tmp_path: Path) -> None:
    source_world = load_world_json(MAP_PATH)
    before = world_hash(source_world)

    out_path = tmp_path / "world_export.json"
    save_world_json(out_path, source_world)
    loaded_world = load_world_json(out_path)

    assert world_hash(loaded_world) == before


def test_save_includes_schema_version_and_world_hash(tmp_path: Path) -> None:
    world = load_world_json(MAP_PATH)
    out_path = tmp_path / "world_export.json"

    save_world_json(out_path, world)
    payload = json.loads(out_path.read_text(encoding="utf-8"))

    assert payload["schema_version"] == 1
    assert payload["world_hash"] == world_hash(world)
    assert [row["surface_id"] for row in payload["surfaces"]] == ["nauvis", "vulcanus"]


def test_loader_fails_when_world_hash_does_not_match(tmp_path: Path) -> None:
    world = load_world_json(MAP_PATH)
    out_path = tmp_path / "world_export.json"
    save_world_json(out_path, world)

    payload = json.loads(out_path.read_text(encoding="utf-8"))
    payload["panels"][0]["health"] = 150
    out_path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValueError, match="world_hash mismatch"):
        load_world_json(out_path)


def test_loader_rejects_panel_on_unknown_surface(tmp_path: Path) -> None:
    payload = json.loads(Path(MAP_PATH).read_text(encoding="utf-8"))
    payload["panels"][0]["surface_id"] = "aquilo"
    out_path = tmp_path / "bad_map.json"
    out_path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValueError, match="unknown surface"):
        load_world_json(out_path)


def test_game_save_json_stable_across_save_load_cycles(tmp_path: Path) -> None:
    simulation = _build_simulation()
    first_path = tmp_path / "first_game.json"
    second_path = tmp_path / "second_game.json"

    save_game_json(first_path, simulation)
    loaded_simulation = load_game_json(first_path)
    save_game_json(second_path, loaded_simulation)

    assert first_path.read_text(encoding="utf-8") == second_path.read_text(encoding="utf-8")


def test_game_save_carries_storm_registry_in_rules_state(tmp_path: Path) -> None:
    simulation = _build_simulation()
    path = tmp_path / "game_save.json"

    save_game_json(path, simulation)
    payload = json.loads(path.read_text(encoding="utf-8"))

    assert is_canonical_save_payload(payload)
    assert payload["save_hash"] == save_hash(payload)
    storms = payload["simulation_state"]["rules_state"][DustStormModule.name]
    assert sorted(storms["active_storms"]) == ["nauvis"]
    assert storms["active_storms"]["nauvis"]["intensity"] == 0.5
    assert storms["original_solar"] == {"nauvis": 1.0}
    assert payload["input_log"][0]["command_type"] == "create_dust_storm"


def test_game_loader_fails_when_save_hash_is_tampered(tmp_path: Path) -> None:
    simulation = _build_simulation()
    path = tmp_path / "game_save.json"
    save_game_json(path, simulation)

    payload = json.loads(path.read_text(encoding="utf-8"))
    payload["simulation_state"]["rules_state"][DustStormModule.name]["active_storms"]["nauvis"]["intensity"] = 1.0
    path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValueError, match="save_hash mismatch"):
        load_game_json(path)


def test_game_save_preserves_unknown_metadata_fields(tmp_path: Path) -> None:
    simulation = _build_simulation()
    simulation.save_metadata = {
        "engine": {"build": "dev", "flags": ["x", "y"]},
        "editor_notes": {"author": "qa"},
    }

    first_path = tmp_path / "game_save.json"
    second_path = tmp_path / "game_save_2.json"

    save_game_json(first_path, simulation)
    save_game_json(second_path, load_game_json(first_path))

    round_tripped_payload = json.loads(second_path.read_text(encoding="utf-8"))
    assert round_tripped_payload["metadata"] == simulation.save_metadata


def test_load_world_json_accepts_canonical_game_payload(tmp_path: Path) -> None:
    simulation = _build_simulation()
    path = tmp_path / "game_save.json"
    save_game_json(path, simulation)

    loaded_world = load_world_json(path)

    assert world_hash(loaded_world) == world_hash(simulation.state.world)


def test_load_storm_simulation_resumes_saved_storm(tmp_path: Path) -> None:
    simulation = _build_simulation()
    path = tmp_path / "game_save.json"
    save_game_json(path, simulation)

    loaded, module = load_storm_simulation(path, config=StormConfig())

    assert loaded.state.tick == 45
    assert simulation_hash(loaded) == simulation_hash(simulation)
    record = module.active_storm("nauvis")
    assert record is not None
    assert record.ramp_duration == 60.0
    assert module.store.original_solar == {"nauvis": 1.0}


def test_atomic_save_writes_final_file(tmp_path: Path) -> None:
    world = load_world_json(MAP_PATH)
    out_path = tmp_path / "nested" / "world_export.json"

    save_world_json(out_path, world)

    assert out_path.exists()
    assert list(out_path.parent.glob("*.tmp")) == []
