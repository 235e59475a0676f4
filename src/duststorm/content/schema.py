from __future__ import annotations

from typing import Any

from duststorm.sim.core import validate_json_value

SUPPORTED_SCHEMA_VERSIONS = {1}
REQUIRED_PANEL_STRING_FIELDS = ("panel_id", "surface_id", "name")
REQUIRED_PANEL_NUMBER_FIELDS = ("position_x", "position_y", "max_health")


def _require_number(value: Any, *, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be numeric")


def _validate_surface(surface: dict[str, Any], *, field_name: str) -> None:
    surface_id = surface.get("surface_id")
    if not isinstance(surface_id, str) or not surface_id:
        raise ValueError(f"{field_name}.surface_id must be a non-empty string")
    if "solar_power_multiplier" in surface:
        _require_number(surface["solar_power_multiplier"], field_name=f"{field_name}.solar_power_multiplier")
    max_panels = surface.get("max_panels")
    if max_panels is not None and (isinstance(max_panels, bool) or not isinstance(max_panels, int) or max_panels < 0):
        raise ValueError(f"{field_name}.max_panels must be a non-negative integer when present")


def _validate_panel(panel: dict[str, Any], *, field_name: str) -> None:
    for key in REQUIRED_PANEL_STRING_FIELDS:
        value = panel.get(key)
        if not isinstance(value, str) or not value:
            raise ValueError(f"{field_name}.{key} must be a non-empty string")
    for key in REQUIRED_PANEL_NUMBER_FIELDS:
        _require_number(panel.get(key), field_name=f"{field_name}.{key}")
    if "health" in panel:
        _require_number(panel["health"], field_name=f"{field_name}.health")


def _validate_world_shape(payload: dict[str, Any], *, field_prefix: str) -> None:
    surfaces = payload.get("surfaces")
    if not isinstance(surfaces, list):
        raise ValueError(f"{field_prefix}.surfaces must be a list")
    surface_ids: set[str] = set()
    for index, surface in enumerate(surfaces):
        if not isinstance(surface, dict):
            raise ValueError(f"{field_prefix}.surfaces[{index}] must be an object")
        _validate_surface(surface, field_name=f"{field_prefix}.surfaces[{index}]")
        surface_ids.add(surface["surface_id"])

    panels = payload.get("panels", [])
    if not isinstance(panels, list):
        raise ValueError(f"{field_prefix}.panels must be a list when present")
    for index, panel in enumerate(panels):
        if not isinstance(panel, dict):
            raise ValueError(f"{field_prefix}.panels[{index}] must be an object")
        _validate_panel(panel, field_name=f"{field_prefix}.panels[{index}]")
        if panel["surface_id"] not in surface_ids:
            raise ValueError(f"{field_prefix}.panels[{index}] references unknown surface: {panel['surface_id']}")

    ghosts = payload.get("ghosts", [])
    if not isinstance(ghosts, list):
        raise ValueError(f"{field_prefix}.ghosts must be a list when present")
    for index, ghost in enumerate(ghosts):
        if not isinstance(ghost, dict):
            raise ValueError(f"{field_prefix}.ghosts[{index}] must be an object")


def validate_world_payload(payload: dict[str, Any]) -> None:
    if not isinstance(payload, dict):
        raise ValueError("world payload must be an object")

    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int):
        raise ValueError("world payload must contain integer field: schema_version")
    if schema_version not in SUPPORTED_SCHEMA_VERSIONS:
        raise ValueError(f"unsupported schema_version: {schema_version}")

    world_digest = payload.get("world_hash")
    if not isinstance(world_digest, str) or not world_digest:
        raise ValueError("world payload must contain string field: world_hash")

    _validate_world_shape(payload, field_prefix="world payload")


def validate_map_template_payload(payload: dict[str, Any]) -> None:
    """Validate an authored surface map; these carry no world_hash."""
    if not isinstance(payload, dict):
        raise ValueError("map template payload must be an object")
    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int) or schema_version not in SUPPORTED_SCHEMA_VERSIONS:
        raise ValueError(f"unsupported schema_version: {schema_version}")
    _validate_world_shape(payload, field_prefix="map template")


def _validate_simulation_state(simulation_state: dict[str, Any]) -> None:
    required_int_fields = {"schema_version", "seed", "master_seed", "tick", "next_event_counter"}
    for field_name in required_int_fields:
        value = simulation_state.get(field_name)
        if not isinstance(value, int):
            raise ValueError(f"simulation_state.{field_name} must be an integer")

    pending_events = simulation_state.get("pending_events")
    if not isinstance(pending_events, list):
        raise ValueError("simulation_state.pending_events must be a list")

    rules_state = simulation_state.get("rules_state")
    if not isinstance(rules_state, dict):
        raise ValueError("simulation_state.rules_state must be an object")

    event_trace = simulation_state.get("event_trace")
    if not isinstance(event_trace, list):
        raise ValueError("simulation_state.event_trace must be a list")

    rng_state = simulation_state.get("rng_state")
    if not isinstance(rng_state, dict):
        raise ValueError("simulation_state.rng_state must be an object")


def validate_save_payload(payload: dict[str, Any]) -> None:
    if not isinstance(payload, dict):
        raise ValueError("save payload must be an object")

    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int):
        raise ValueError("save payload must contain integer field: schema_version")
    if schema_version not in SUPPORTED_SCHEMA_VERSIONS:
        raise ValueError(f"unsupported schema_version: {schema_version}")

    save_digest = payload.get("save_hash")
    if not isinstance(save_digest, str) or not save_digest:
        raise ValueError("save payload must contain string field: save_hash")

    world_state = payload.get("world_state")
    if not isinstance(world_state, dict):
        raise ValueError("save payload must contain object field: world_state")
    _validate_world_shape(world_state, field_prefix="world_state")

    simulation_state = payload.get("simulation_state")
    if not isinstance(simulation_state, dict):
        raise ValueError("save payload must contain object field: simulation_state")
    _validate_simulation_state(simulation_state)

    input_log = payload.get("input_log")
    if not isinstance(input_log, list):
        raise ValueError("save payload must contain list field: input_log")

    if "metadata" in payload and not isinstance(payload["metadata"], dict):
        raise ValueError("save payload field metadata must be an object when present")

    validate_json_value(payload["world_state"], field_name="world_state")
    validate_json_value(payload["input_log"], field_name="input_log")
    if "metadata" in payload:
        validate_json_value(payload["metadata"], field_name="metadata")
