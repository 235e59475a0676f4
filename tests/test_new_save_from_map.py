import json
from pathlib import Path

from duststorm.cli.new_save_from_map import main
from duststorm.content.io import load_game_json, load_world_json, save_game_json
from duststorm.sim.core import Simulation
from duststorm.sim.hash import simulation_hash, world_hash

MAP_PATH = "content/examples/basic_surfaces.json"


def test_new_save_from_map_builds_canonical_save(tmp_path: Path, capsys) -> None:
    out_path = tmp_path / "sample_save.json"

    exit_code = main([MAP_PATH, str(out_path), "--seed", "123", "--print-summary"])

    output = capsys.readouterr().out
    assert exit_code == 0
    assert out_path.exists()
    assert "summary surface_id=nauvis solar_power_multiplier=1.0 panel_count=12" in output
    assert "summary surface_id=vulcanus solar_power_multiplier=4.0 panel_count=2" in output
    assert "save_hash=" in output

    simulation = load_game_json(out_path)
    assert world_hash(simulation.state.world) == world_hash(load_world_json(MAP_PATH))
    assert simulation.seed == 123
    assert simulation.state.tick == 0

    hash_before = simulation_hash(simulation)
    assert simulation_hash(load_game_json(out_path)) == hash_before


def test_new_save_from_map_refuses_canonical_input(tmp_path: Path, capsys) -> None:
    canonical_input = tmp_path / "canonical_input.json"
    save_game_json(canonical_input, Simulation(world=load_world_json(MAP_PATH), seed=5))

    out_path = tmp_path / "out.json"
    exit_code = main([str(canonical_input), str(out_path), "--seed", "7"])

    output = capsys.readouterr().out
    assert exit_code == 1
    assert "already canonical save" in output
    assert not out_path.exists()


def test_new_save_from_map_requires_force_to_overwrite(tmp_path: Path, capsys) -> None:
    out_path = tmp_path / "existing_save.json"
    out_path.write_text(json.dumps({"existing": True}), encoding="utf-8")

    exit_code = main([MAP_PATH, str(out_path)])
    output = capsys.readouterr().out

    assert exit_code == 1
    assert "use --force" in output

    overwrite_exit_code = main([MAP_PATH, str(out_path), "--force"])
    assert overwrite_exit_code == 0


def test_new_save_from_map_reports_missing_input(tmp_path: Path, capsys) -> None:
    exit_code = main([str(tmp_path / "missing.json"), str(tmp_path / "out.json")])

    assert exit_code == 1
    assert "error: input map_path does not exist" in capsys.readouterr().out
