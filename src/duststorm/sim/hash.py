from __future__ import annotations

import hashlib
import json
from typing import Any

from duststorm.sim.core import Simulation
from duststorm.sim.world import WorldState

SAVE_HASH_FIELDS = ("schema_version", "world_state", "simulation_state", "input_log")


def canonical_digest(value: Any) -> str:
    """sha256 of the compact, key-sorted JSON encoding of ``value``."""
    return hashlib.sha256(json.dumps(value, sort_keys=True, separators=(",", ":")).encode("utf-8")).hexdigest()


def world_hash(world: WorldState) -> str:
    return canonical_digest(world.to_dict())


def save_hash(payload: dict[str, Any]) -> str:
    """Digest of a canonical save; metadata and the stored hash itself are excluded."""
    return canonical_digest({name: payload[name] for name in SAVE_HASH_FIELDS})


def simulation_hash(simulation: Simulation) -> str:
    """Digest of everything that decides how the simulation continues.

    The payload is taken after every module has synced its state, so live storm
    records, cached baselines and the per-surface multipliers are all covered.
    """
    return canonical_digest(simulation.simulation_payload())
