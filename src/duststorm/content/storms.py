from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

STORM_CONFIG_SCHEMA_VERSION = 1
DEFAULT_STORM_CONFIG_PATH = "content/storms/storm_config.json"
DEFAULT_TICK_RATE = 10
DEFAULT_DUST_PROBABILITY_PER_INTENSITY = 0.002
DEFAULT_FORCE_DUSTY_HEALTH_MULTIPLIER = 0.5


@dataclass(frozen=True)
class StormPreset:
    preset_id: str
    intensity: float
    duration: int
    ramp_duration: int


@dataclass(frozen=True)
class StormConfig:
    schema_version: int = STORM_CONFIG_SCHEMA_VERSION
    tick_rate: int = DEFAULT_TICK_RATE
    dust_probability_per_intensity: float = DEFAULT_DUST_PROBABILITY_PER_INTENSITY
    force_dusty_health_multiplier: float = DEFAULT_FORCE_DUSTY_HEALTH_MULTIPLIER
    presets: tuple[StormPreset, ...] = ()

    def presets_by_id(self) -> dict[str, StormPreset]:
        return {preset.preset_id: preset for preset in self.presets}


def load_storm_config_json(path: str | Path = DEFAULT_STORM_CONFIG_PATH) -> StormConfig:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return _config_from_payload(payload)


def _config_from_payload(payload: dict[str, Any]) -> StormConfig:
    if not isinstance(payload, dict):
        raise ValueError("storm config payload must be an object")

    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int):
        raise ValueError("storm config must contain integer field: schema_version")
    if schema_version != STORM_CONFIG_SCHEMA_VERSION:
        raise ValueError(f"unsupported storm config schema_version: {schema_version}")

    tick_rate = payload.get("tick_rate", DEFAULT_TICK_RATE)
    if isinstance(tick_rate, bool) or not isinstance(tick_rate, int) or tick_rate <= 0:
        raise ValueError("tick_rate must be a positive integer")

    probability = payload.get("dust_probability_per_intensity", DEFAULT_DUST_PROBABILITY_PER_INTENSITY)
    if isinstance(probability, bool) or not isinstance(probability, (int, float)):
        raise ValueError("dust_probability_per_intensity must be numeric")
    if probability < 0.0 or probability > 1.0:
        raise ValueError("dust_probability_per_intensity must be within [0, 1]")

    health_multiplier = payload.get("force_dusty_health_multiplier", DEFAULT_FORCE_DUSTY_HEALTH_MULTIPLIER)
    if isinstance(health_multiplier, bool) or not isinstance(health_multiplier, (int, float)):
        raise ValueError("force_dusty_health_multiplier must be numeric")
    if health_multiplier < 0.0:
        raise ValueError("force_dusty_health_multiplier must be >= 0")

    rows = payload.get("presets", [])
    if not isinstance(rows, list):
        raise ValueError("storm config field presets must be a list")

    presets: list[StormPreset] = []
    seen_ids: set[str] = set()
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValueError(f"presets[{index}] must be an object")
        preset_id = row.get("preset_id")
        if not isinstance(preset_id, str) or not preset_id:
            raise ValueError(f"presets[{index}].preset_id must be a non-empty string")
        if preset_id in seen_ids:
            raise ValueError(f"duplicate preset_id: {preset_id}")
        seen_ids.add(preset_id)

        intensity = row.get("intensity")
        if isinstance(intensity, bool) or not isinstance(intensity, (int, float)):
            raise ValueError(f"presets[{index}].intensity must be numeric")
        duration = row.get("duration")
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise ValueError(f"presets[{index}].duration must be an integer")
        ramp_duration = row.get("ramp_duration")
        if isinstance(ramp_duration, bool) or not isinstance(ramp_duration, int):
            raise ValueError(f"presets[{index}].ramp_duration must be an integer")

        # Range checks on intensity/duration are the storm module's job, so a
        # bad preset surfaces as a reported creation failure.
        presets.append(
            StormPreset(
                preset_id=preset_id,
                intensity=float(intensity),
                duration=duration,
                ramp_duration=ramp_duration,
            )
        )

    return StormConfig(
        schema_version=schema_version,
        tick_rate=tick_rate,
        dust_probability_per_intensity=float(probability),
        force_dusty_health_multiplier=float(health_multiplier),
        presets=tuple(presets),
    )
