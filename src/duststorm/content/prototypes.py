from __future__ import annotations

import json
from dataclasses import dataclass, replace
from functools import cached_property
from pathlib import Path
from typing import Any

PROTOTYPES_SCHEMA_VERSION = 1
DEFAULT_PROTOTYPES_PATH = "content/prototypes/solar_panels.json"
DUSTY_SUFFIX = "-dusty"
GHOST_EFFECT_PREFIX = "create-ghost-"
DUSTY_TINT = (1.0, 0.667, 0.0, 1.0)
DUSTY_PRODUCTION_FACTOR = 0.2
DUSTY_REPAIR_SPEED_FACTOR = 0.25


def is_dusty_name(name: str) -> bool:
    return name.endswith(DUSTY_SUFFIX)


def dusty_name_of(name: str) -> str:
    return name + DUSTY_SUFFIX


def clean_name_of(name: str) -> str:
    if not is_dusty_name(name):
        return name
    return name[: -len(DUSTY_SUFFIX)]


def ghost_effect_id(base_name: str) -> str:
    return GHOST_EFFECT_PREFIX + base_name


@dataclass(frozen=True)
class PanelPrototype:
    name: str
    max_health: float
    production_kw: float
    repair_speed_modifier: float = 1.0
    has_item: bool = True
    tint: tuple[float, float, float, float] | None = None
    base_name: str | None = None
    placeable_by: str | None = None
    create_ghost_on_death: bool = True
    dying_trigger_effect_id: str | None = None

    @property
    def is_dusty(self) -> bool:
        return self.base_name is not None

    @property
    def is_buildable(self) -> bool:
        """A ghost of this prototype can be built from some item."""
        return self.has_item or self.placeable_by is not None


@dataclass(frozen=True)
class PrototypeRegistry:
    schema_version: int
    prototypes: tuple[PanelPrototype, ...]

    @cached_property
    def _by_name(self) -> dict[str, PanelPrototype]:
        return {prototype.name: prototype for prototype in self.prototypes}

    def by_name(self) -> dict[str, PanelPrototype]:
        return dict(self._by_name)

    def get(self, name: str) -> PanelPrototype | None:
        return self._by_name.get(name)


def derive_dusty_prototype(base: PanelPrototype) -> PanelPrototype:
    """Build the dusty variant of a base panel.

    The dusty panel produces a fifth of the power, repairs at a quarter of the
    speed, and on death asks for a ghost of the clean panel instead of itself.
    """
    if base.is_dusty:
        raise ValueError(f"cannot derive a dusty variant of dusty prototype: {base.name}")
    tint = DUSTY_TINT
    if base.tint is not None:
        red, green, blue, alpha = base.tint
        tint = (red * DUSTY_TINT[0], green * DUSTY_TINT[1], blue * DUSTY_TINT[2], alpha * DUSTY_TINT[3])
    return replace(
        base,
        name=dusty_name_of(base.name),
        production_kw=base.production_kw * DUSTY_PRODUCTION_FACTOR,
        repair_speed_modifier=base.repair_speed_modifier * DUSTY_REPAIR_SPEED_FACTOR,
        # No dusty item exists: the variant is only placed by scripts and is
        # rebuilt or mined as the base item through placeable_by.
        has_item=False,
        tint=tint,
        base_name=base.name,
        placeable_by=base.name if base.has_item else None,
        create_ghost_on_death=False,
        dying_trigger_effect_id=ghost_effect_id(base.name),
    )


def build_prototype_registry(base_prototypes: list[PanelPrototype]) -> PrototypeRegistry:
    prototypes: list[PanelPrototype] = []
    seen: set[str] = set()
    for base in base_prototypes:
        for prototype in (base, derive_dusty_prototype(base)):
            if prototype.name in seen:
                raise ValueError(f"duplicate panel prototype name: {prototype.name}")
            seen.add(prototype.name)
            prototypes.append(prototype)
    return PrototypeRegistry(schema_version=PROTOTYPES_SCHEMA_VERSION, prototypes=tuple(prototypes))


def load_prototypes_json(path: str | Path = DEFAULT_PROTOTYPES_PATH) -> PrototypeRegistry:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return _registry_from_payload(payload)


def _registry_from_payload(payload: dict[str, Any]) -> PrototypeRegistry:
    if not isinstance(payload, dict):
        raise ValueError("prototype registry payload must be an object")

    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int):
        raise ValueError("prototype registry must contain integer field: schema_version")
    if schema_version != PROTOTYPES_SCHEMA_VERSION:
        raise ValueError(f"unsupported prototype registry schema_version: {schema_version}")

    rows = payload.get("prototypes")
    if not isinstance(rows, list):
        raise ValueError("prototype registry must contain list field: prototypes")

    bases: list[PanelPrototype] = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValueError(f"prototypes[{index}] must be an object")

        name = row.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError(f"prototypes[{index}].name must be a non-empty string")
        if is_dusty_name(name):
            raise ValueError(f"prototypes[{index}].name must not end with {DUSTY_SUFFIX!r}")

        max_health = _positive_number(row.get("max_health"), field_name=f"prototypes[{index}].max_health")
        production_kw = _non_negative_number(row.get("production_kw"), field_name=f"prototypes[{index}].production_kw")
        repair_speed_modifier = _non_negative_number(
            row.get("repair_speed_modifier", 1.0),
            field_name=f"prototypes[{index}].repair_speed_modifier",
        )

        has_item = row.get("has_item", True)
        if not isinstance(has_item, bool):
            raise ValueError(f"prototypes[{index}].has_item must be boolean")

        tint_payload = row.get("tint")
        tint: tuple[float, float, float, float] | None = None
        if tint_payload is not None:
            if not isinstance(tint_payload, list) or len(tint_payload) != 4:
                raise ValueError(f"prototypes[{index}].tint must be a list of 4 numbers")
            red, green, blue, alpha = (
                _non_negative_number(channel, field_name=f"prototypes[{index}].tint") for channel in tint_payload
            )
            tint = (red, green, blue, alpha)

        bases.append(
            PanelPrototype(
                name=name,
                max_health=max_health,
                production_kw=production_kw,
                repair_speed_modifier=repair_speed_modifier,
                has_item=has_item,
                tint=tint,
            )
        )

    return build_prototype_registry(bases)


def _non_negative_number(value: Any, *, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be numeric")
    if value < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return float(value)


def _positive_number(value: Any, *, field_name: str) -> float:
    number = _non_negative_number(value, field_name=field_name)
    if number <= 0:
        raise ValueError(f"{field_name} must be > 0")
    return number
