from __future__ import annotations

import logging
from typing import Any

from duststorm.content.prototypes import PrototypeRegistry
from duststorm.sim.core import Simulation
from duststorm.sim.world import SOLAR_PANEL_TYPE, GhostState, PanelState, SurfaceState

logger = logging.getLogger(__name__)

HOST_REPORT_EVENT_TYPE = "host_report"
SCRIPT_TRIGGER_EVENT_TYPE = "script_trigger_effect"


class PanelHost:
    """Capabilities the storm engine needs from whatever owns the panels.

    Panels are addressed by id only. A destroyed panel's id is never reused,
    so callers re-resolve through the host after every create.
    """

    @property
    def tick(self) -> int:
        raise NotImplementedError

    def surface_ids(self) -> list[str]:
        raise NotImplementedError

    def get_surface(self, surface_id: str) -> SurfaceState | None:
        raise NotImplementedError

    def find_panels(self, surface_id: str) -> list[PanelState]:
        raise NotImplementedError

    def get_panel(self, panel_id: str) -> PanelState | None:
        raise NotImplementedError

    def is_valid(self, panel_id: str) -> bool:
        return self.get_panel(panel_id) is not None

    def destroy_panel(self, panel_id: str, *, raise_destroy: bool = False) -> PanelState | None:
        raise NotImplementedError

    def create_panel(
        self,
        *,
        surface_id: str,
        name: str,
        position: tuple[float, float],
        force: str,
        quality: str,
    ) -> PanelState | None:
        raise NotImplementedError

    def set_panel_health(self, panel_id: str, health: float) -> None:
        raise NotImplementedError

    def repair_panel(self, panel_id: str, amount: float) -> float:
        raise NotImplementedError

    def get_solar_multiplier(self, surface_id: str) -> float | None:
        raise NotImplementedError

    def set_solar_multiplier(self, surface_id: str, value: float) -> None:
        raise NotImplementedError

    def output_kw(self, surface_id: str) -> float:
        raise NotImplementedError

    def report(self, message: str, **details: Any) -> None:
        raise NotImplementedError


class WorldPanelHost(PanelHost):
    """Host backed by a ``Simulation`` and its ``WorldState``."""

    def __init__(self, sim: Simulation, prototypes: PrototypeRegistry) -> None:
        self.sim = sim
        self.prototypes = prototypes
        self._report_counter = 0

    @property
    def tick(self) -> int:
        return self.sim.state.tick

    def surface_ids(self) -> list[str]:
        return sorted(self.sim.state.world.surfaces)

    def get_surface(self, surface_id: str) -> SurfaceState | None:
        return self.sim.state.world.surfaces.get(surface_id)

    def find_panels(self, surface_id: str) -> list[PanelState]:
        return self.sim.state.world.panels_on_surface(surface_id, panel_type=SOLAR_PANEL_TYPE)

    def get_panel(self, panel_id: str) -> PanelState | None:
        return self.sim.state.world.panels.get(panel_id)

    def destroy_panel(self, panel_id: str, *, raise_destroy: bool = False) -> PanelState | None:
        panel = self.sim.state.world.panels.pop(panel_id, None)
        if panel is None:
            return None
        if raise_destroy:
            self._on_panel_died(panel)
        return panel

    def kill_panel(self, panel_id: str) -> bool:
        """Destroy a panel through a non-transition path (damage, deconstruction)."""
        return self.destroy_panel(panel_id, raise_destroy=True) is not None

    def create_panel(
        self,
        *,
        surface_id: str,
        name: str,
        position: tuple[float, float],
        force: str,
        quality: str,
    ) -> PanelState | None:
        world = self.sim.state.world
        surface = world.surfaces.get(surface_id)
        prototype = self.prototypes.get(name)
        if surface is None or prototype is None:
            return None
        x, y = position
        if world.panel_at(surface_id, x, y) is not None:
            return None
        if surface.max_panels is not None and len(world.panels_on_surface(surface_id)) >= surface.max_panels:
            return None
        panel = PanelState(
            panel_id=world.allocate_panel_id(),
            surface_id=surface_id,
            name=name,
            position_x=x,
            position_y=y,
            force=force,
            quality=quality,
            health=prototype.max_health,
            max_health=prototype.max_health,
        )
        world.add_panel(panel)
        return panel

    def set_panel_health(self, panel_id: str, health: float) -> None:
        panel = self.sim.state.world.panels[panel_id]
        panel.health = min(max(float(health), 0.0), panel.max_health)

    def repair_panel(self, panel_id: str, amount: float) -> float:
        """Heal by ``amount`` scaled by the prototype repair speed; returns the new health."""
        panel = self.sim.state.world.panels[panel_id]
        prototype = self.prototypes.get(panel.name)
        speed = prototype.repair_speed_modifier if prototype is not None else 1.0
        self.set_panel_health(panel_id, panel.health + amount * speed)
        return panel.health

    def get_solar_multiplier(self, surface_id: str) -> float | None:
        surface = self.get_surface(surface_id)
        if surface is None:
            return None
        return surface.solar_power_multiplier

    def set_solar_multiplier(self, surface_id: str, value: float) -> None:
        self.sim.state.world.surfaces[surface_id].solar_power_multiplier = float(value)

    def output_kw(self, surface_id: str) -> float:
        """Nominal power of every panel on the surface, scaled by its solar multiplier."""
        surface = self.get_surface(surface_id)
        if surface is None:
            return 0.0
        total = 0.0
        for panel in self.sim.state.world.panels_on_surface(surface_id):
            prototype = self.prototypes.get(panel.name)
            if prototype is not None:
                total += prototype.production_kw
        return total * surface.solar_power_multiplier

    def create_ghost(
        self,
        *,
        surface_id: str,
        inner_name: str,
        position: tuple[float, float],
        force: str,
        expires: bool = True,
    ) -> GhostState | None:
        world = self.sim.state.world
        prototype = self.prototypes.get(inner_name)
        if surface_id not in world.surfaces or prototype is None or not prototype.is_buildable:
            return None
        ghost = GhostState(
            ghost_id=world.allocate_ghost_id(),
            surface_id=surface_id,
            inner_name=inner_name,
            position_x=position[0],
            position_y=position[1],
            force=force,
            expires=expires,
        )
        world.ghosts[ghost.ghost_id] = ghost
        return ghost

    def report(self, message: str, **details: Any) -> None:
        logger.warning(message)
        self._report_counter += 1
        self.sim.record_outcome(
            event_type=HOST_REPORT_EVENT_TYPE,
            key=f"report:{self.tick}:{self._report_counter}:{message}",
            params={"message": message, **details},
        )

    def _on_panel_died(self, panel: PanelState) -> None:
        prototype = self.prototypes.get(panel.name)
        if prototype is None:
            return
        if prototype.dying_trigger_effect_id is not None:
            self.sim.schedule_event_at(
                tick=self.tick,
                event_type=SCRIPT_TRIGGER_EVENT_TYPE,
                params={
                    "effect_id": prototype.dying_trigger_effect_id,
                    "surface_id": panel.surface_id,
                    "position": [panel.position_x, panel.position_y],
                    "force": panel.force,
                },
            )
        elif prototype.create_ghost_on_death and prototype.has_item:
            self.create_ghost(
                surface_id=panel.surface_id,
                inner_name=panel.name,
                position=panel.position,
                force=panel.force,
            )
