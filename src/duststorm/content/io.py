from __future__ import annotations

import json
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from duststorm.content.prototypes import PrototypeRegistry
from duststorm.content.schema import validate_map_template_payload, validate_save_payload, validate_world_payload
from duststorm.content.storms import StormConfig
from duststorm.sim.core import Simulation
from duststorm.sim.hash import save_hash, world_hash
from duststorm.sim.periodic import PeriodicScheduler
from duststorm.sim.storms import DustStormModule
from duststorm.sim.world import WorldState

SCHEMA_VERSION = 1
CANONICAL_JSON_INDENT = 2
CANONICAL_JSON_SEPARATORS = (",", ": ")


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload,
        indent=CANONICAL_JSON_INDENT,
        separators=CANONICAL_JSON_SEPARATORS,
        sort_keys=True,
    )


def _write_atomic_json(path: str | Path, payload: dict[str, Any]) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    serialized = _canonical_json(payload)

    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=destination.parent,
            delete=False,
            suffix=".tmp",
        ) as temp_file:
            temp_file.write(serialized)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_path = Path(temp_file.name)
        os.replace(temp_path, destination)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


def is_canonical_save_payload(payload: Any) -> bool:
    return isinstance(payload, dict) and "world_state" in payload and "save_hash" in payload


def _world_from_payload(payload: dict[str, Any]) -> WorldState:
    # Authored maps carry no world_hash; hashed world files must match it.
    if "world_hash" not in payload:
        validate_map_template_payload(payload)
        return WorldState.from_dict(payload)

    validate_world_payload(payload)
    world = WorldState.from_dict(payload)
    expected_hash = payload["world_hash"]
    actual_hash = world_hash(world)
    if expected_hash != actual_hash:
        raise ValueError(
            f"world_hash mismatch while loading world (stored={expected_hash}, recomputed={actual_hash})"
        )
    return world


def _game_payload(simulation: Simulation) -> dict[str, Any]:
    simulation_state = simulation.simulation_payload()
    world_state = simulation_state.pop("world")
    input_log = simulation_state.pop("input_log")
    metadata = simulation.save_metadata if isinstance(simulation.save_metadata, dict) else {}
    payload: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "world_state": world_state,
        "simulation_state": simulation_state,
        "input_log": input_log,
        "metadata": metadata,
    }
    payload["save_hash"] = save_hash(payload)
    return payload


def _simulation_from_game_payload(payload: dict[str, Any]) -> Simulation:
    validate_save_payload(payload)

    expected_hash = payload["save_hash"]
    actual_hash = save_hash(payload)
    if expected_hash != actual_hash:
        raise ValueError(
            f"save_hash mismatch while loading save (stored={expected_hash}, recomputed={actual_hash})"
        )

    simulation = Simulation.from_simulation_payload(
        {
            **payload["simulation_state"],
            "world": payload["world_state"],
            "input_log": payload["input_log"],
        }
    )
    metadata = payload.get("metadata", {})
    simulation.save_metadata = metadata if isinstance(metadata, dict) else {}
    return simulation


def load_world_json(path: str | Path) -> WorldState:
    """Load a world from a map template, a hashed world file or a game save."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if is_canonical_save_payload(payload):
        return _simulation_from_game_payload(payload).state.world
    if not isinstance(payload, dict):
        raise ValueError("world payload must be an object")
    return _world_from_payload(payload)


def save_world_json(path: str | Path, world: WorldState) -> None:
    payload = {
        "schema_version": SCHEMA_VERSION,
        "world_hash": world_hash(world),
        **world.to_dict(),
    }
    validate_world_payload(payload)
    _write_atomic_json(path, payload)


def save_game_json(path: str | Path, simulation: Simulation) -> None:
    payload = _game_payload(simulation)
    validate_save_payload(payload)
    _write_atomic_json(path, payload)


def load_game_json(path: str | Path) -> Simulation:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return _simulation_from_game_payload(payload)


def attach_storm_modules(
    simulation: Simulation,
    *,
    prototypes: PrototypeRegistry | None = None,
    config: StormConfig | None = None,
) -> DustStormModule:
    """Register the scheduler and storm module; a loaded save resumes its storms."""
    if simulation.get_rule_module(PeriodicScheduler.name) is None:
        simulation.register_rule_module(PeriodicScheduler())
    module = DustStormModule(prototypes=prototypes, config=config)
    simulation.register_rule_module(module)
    return module


def load_storm_simulation(
    path: str | Path,
    *,
    seed: int = 0,
    prototypes: PrototypeRegistry | None = None,
    config: StormConfig | None = None,
) -> tuple[Simulation, DustStormModule]:
    """Open a save, or start a fresh simulation from a map, with storms attached."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if is_canonical_save_payload(payload):
        simulation = _simulation_from_game_payload(payload)
    else:
        if not isinstance(payload, dict):
            raise ValueError("world payload must be an object")
        simulation = Simulation(world=_world_from_payload(payload), seed=seed)
    module = attach_storm_modules(simulation, prototypes=prototypes, config=config)
    return simulation, module
