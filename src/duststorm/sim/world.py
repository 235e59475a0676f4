from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SOLAR_PANEL_TYPE = "solar-panel"
DEFAULT_FORCE = "player"
DEFAULT_QUALITY = "normal"
PANEL_ID_PREFIX = "panel"
GHOST_ID_PREFIX = "ghost"


def _require_non_empty_str(value: Any, *, field_name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{field_name} must be a non-empty string")
    return value


def _require_number(value: Any, *, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be numeric")
    return float(value)


def _require_non_negative_int(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer")
    if value < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return value


@dataclass
class SurfaceState:
    surface_id: str
    solar_power_multiplier: float = 1.0
    max_panels: int | None = None

    def __post_init__(self) -> None:
        _require_non_empty_str(self.surface_id, field_name="surface_id")
        self.solar_power_multiplier = _require_number(
            self.solar_power_multiplier,
            field_name="surface.solar_power_multiplier",
        )
        if self.solar_power_multiplier < 0:
            raise ValueError("surface.solar_power_multiplier must be >= 0")
        if self.max_panels is not None:
            _require_non_negative_int(self.max_panels, field_name="surface.max_panels")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "surface_id": self.surface_id,
            "solar_power_multiplier": self.solar_power_multiplier,
        }
        if self.max_panels is not None:
            payload["max_panels"] = self.max_panels
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SurfaceState":
        return cls(
            surface_id=str(data["surface_id"]),
            solar_power_multiplier=data.get("solar_power_multiplier", 1.0),
            max_panels=(int(data["max_panels"]) if data.get("max_panels") is not None else None),
        )


@dataclass
class PanelState:
    panel_id: str
    surface_id: str
    name: str
    position_x: float
    position_y: float
    health: float
    max_health: float
    panel_type: str = SOLAR_PANEL_TYPE
    force: str = DEFAULT_FORCE
    quality: str = DEFAULT_QUALITY

    def __post_init__(self) -> None:
        _require_non_empty_str(self.panel_id, field_name="panel_id")
        _require_non_empty_str(self.surface_id, field_name="panel.surface_id")
        _require_non_empty_str(self.name, field_name="panel.name")
        _require_non_empty_str(self.panel_type, field_name="panel.panel_type")
        _require_non_empty_str(self.force, field_name="panel.force")
        _require_non_empty_str(self.quality, field_name="panel.quality")
        self.position_x = _require_number(self.position_x, field_name="panel.position_x")
        self.position_y = _require_number(self.position_y, field_name="panel.position_y")
        self.max_health = _require_number(self.max_health, field_name="panel.max_health")
        if self.max_health <= 0:
            raise ValueError("panel.max_health must be > 0")
        self.health = _require_number(self.health, field_name="panel.health")
        if self.health < 0 or self.health > self.max_health:
            raise ValueError("panel.health must be within [0, max_health]")

    @property
    def position(self) -> tuple[float, float]:
        return (self.position_x, self.position_y)

    def health_ratio(self) -> float:
        return self.health / self.max_health

    def to_dict(self) -> dict[str, Any]:
        return {
            "panel_id": self.panel_id,
            "surface_id": self.surface_id,
            "name": self.name,
            "panel_type": self.panel_type,
            "position_x": self.position_x,
            "position_y": self.position_y,
            "force": self.force,
            "quality": self.quality,
            "health": self.health,
            "max_health": self.max_health,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PanelState":
        max_health = data.get("max_health")
        return cls(
            panel_id=str(data["panel_id"]),
            surface_id=str(data["surface_id"]),
            name=str(data["name"]),
            panel_type=str(data.get("panel_type", SOLAR_PANEL_TYPE)),
            position_x=data["position_x"],
            position_y=data["position_y"],
            force=str(data.get("force", DEFAULT_FORCE)),
            quality=str(data.get("quality", DEFAULT_QUALITY)),
            health=data.get("health", max_health),
            max_health=max_health,
        )


@dataclass
class GhostState:
    """Placeholder that marks where a panel should be rebuilt."""

    ghost_id: str
    surface_id: str
    inner_name: str
    position_x: float
    position_y: float
    force: str = DEFAULT_FORCE
    expires: bool = True

    def __post_init__(self) -> None:
        _require_non_empty_str(self.ghost_id, field_name="ghost_id")
        _require_non_empty_str(self.surface_id, field_name="ghost.surface_id")
        _require_non_empty_str(self.inner_name, field_name="ghost.inner_name")
        _require_non_empty_str(self.force, field_name="ghost.force")
        self.position_x = _require_number(self.position_x, field_name="ghost.position_x")
        self.position_y = _require_number(self.position_y, field_name="ghost.position_y")
        if not isinstance(self.expires, bool):
            raise ValueError("ghost.expires must be boolean")

    def to_dict(self) -> dict[str, Any]:
        return {
            "ghost_id": self.ghost_id,
            "surface_id": self.surface_id,
            "inner_name": self.inner_name,
            "position_x": self.position_x,
            "position_y": self.position_y,
            "force": self.force,
            "expires": self.expires,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GhostState":
        return cls(
            ghost_id=str(data["ghost_id"]),
            surface_id=str(data["surface_id"]),
            inner_name=str(data["inner_name"]),
            position_x=data["position_x"],
            position_y=data["position_y"],
            force=str(data.get("force", DEFAULT_FORCE)),
            expires=bool(data.get("expires", True)),
        )


@dataclass
class WorldState:
    surfaces: dict[str, SurfaceState] = field(default_factory=dict)
    panels: dict[str, PanelState] = field(default_factory=dict)
    ghosts: dict[str, GhostState] = field(default_factory=dict)
    next_panel_counter: int = 1
    next_ghost_counter: int = 1

    def add_surface(self, surface: SurfaceState) -> None:
        if surface.surface_id in self.surfaces:
            raise ValueError(f"duplicate surface_id: {surface.surface_id}")
        self.surfaces[surface.surface_id] = surface

    def remove_surface(self, surface_id: str) -> bool:
        """Delete a surface together with everything placed on it."""
        if self.surfaces.pop(surface_id, None) is None:
            return False
        self.panels = {pid: panel for pid, panel in self.panels.items() if panel.surface_id != surface_id}
        self.ghosts = {gid: ghost for gid, ghost in self.ghosts.items() if ghost.surface_id != surface_id}
        return True

    def allocate_panel_id(self) -> str:
        panel_id = f"{PANEL_ID_PREFIX}-{self.next_panel_counter:06d}"
        self.next_panel_counter += 1
        return panel_id

    def allocate_ghost_id(self) -> str:
        ghost_id = f"{GHOST_ID_PREFIX}-{self.next_ghost_counter:06d}"
        self.next_ghost_counter += 1
        return ghost_id

    def add_panel(self, panel: PanelState) -> None:
        if panel.surface_id not in self.surfaces:
            raise ValueError(f"panel '{panel.panel_id}' references unknown surface '{panel.surface_id}'")
        if panel.panel_id in self.panels:
            raise ValueError(f"duplicate panel_id: {panel.panel_id}")
        self.panels[panel.panel_id] = panel

    def panels_on_surface(self, surface_id: str, *, panel_type: str | None = None) -> list[PanelState]:
        return [
            self.panels[panel_id]
            for panel_id in sorted(self.panels)
            if self.panels[panel_id].surface_id == surface_id
            and (panel_type is None or self.panels[panel_id].panel_type == panel_type)
        ]

    def panel_at(self, surface_id: str, x: float, y: float) -> PanelState | None:
        for panel in self.panels.values():
            if panel.surface_id == surface_id and panel.position_x == x and panel.position_y == y:
                return panel
        return None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "surfaces": [self.surfaces[surface_id].to_dict() for surface_id in sorted(self.surfaces)],
            "panels": [self.panels[panel_id].to_dict() for panel_id in sorted(self.panels)],
            "next_panel_counter": self.next_panel_counter,
            "next_ghost_counter": self.next_ghost_counter,
        }
        if self.ghosts:
            payload["ghosts"] = [self.ghosts[ghost_id].to_dict() for ghost_id in sorted(self.ghosts)]
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorldState":
        if not isinstance(data, dict):
            raise ValueError("world payload must be an object")
        world = cls(
            next_panel_counter=_require_non_negative_int(
                data.get("next_panel_counter", 1),
                field_name="next_panel_counter",
            ),
            next_ghost_counter=_require_non_negative_int(
                data.get("next_ghost_counter", 1),
                field_name="next_ghost_counter",
            ),
        )

        raw_surfaces = data.get("surfaces", [])
        if not isinstance(raw_surfaces, list):
            raise ValueError("surfaces must be a list")
        for row in raw_surfaces:
            if not isinstance(row, dict):
                raise ValueError("surface entry must be an object")
            world.add_surface(SurfaceState.from_dict(row))

        raw_panels = data.get("panels", [])
        if not isinstance(raw_panels, list):
            raise ValueError("panels must be a list")
        for row in raw_panels:
            if not isinstance(row, dict):
                raise ValueError("panel entry must be an object")
            world.add_panel(PanelState.from_dict(row))

        raw_ghosts = data.get("ghosts", [])
        if not isinstance(raw_ghosts, list):
            raise ValueError("ghosts must be a list")
        for row in raw_ghosts:
            if not isinstance(row, dict):
                raise ValueError("ghost entry must be an object")
            ghost = GhostState.from_dict(row)
            world.ghosts[ghost.ghost_id] = ghost

        # Map templates may list panels with explicit ids but no counter.
        world.next_panel_counter = max(world.next_panel_counter, _next_counter(world.panels, PANEL_ID_PREFIX))
        world.next_ghost_counter = max(world.next_ghost_counter, _next_counter(world.ghosts, GHOST_ID_PREFIX))
        return world


def _next_counter(records: dict[str, Any], prefix: str) -> int:
    highest = 0
    for record_id in records:
        head, _, tail = record_id.rpartition("-")
        if head == prefix and tail.isdigit():
            highest = max(highest, int(tail))
    return highest + 1
