from __future__ import annotations

from duststorm.content.io import load_storm_simulation
from duststorm.content.prototypes import is_dusty_name
from duststorm.sim.core import SimCommand, Simulation
from duststorm.sim.storms import (
    CREATE_STORM_COMMAND,
    FORCE_CLEAN_COMMAND,
    FORCE_DUSTY_COMMAND,
    PHASE_ABSENT,
    DustStormModule,
)

DEFAULT_MAP_PATH = "content/examples/basic_surfaces.json"
PANEL_GLYPHS = {"clean": "#", "dusty": "%"}
GHOST_GLYPH = "g"

CURSOR_IRON_PLATE = "iron-plate"
CURSOR_PLASTIC_BAR = "plastic-bar"
CURSOR_COPPER_PLATE = "copper-plate"
CLICK_LEFT = "left"
CLICK_RIGHT = "right"

# (intensity, duration, ramp_duration) per mouse button with an iron plate held.
IRON_PLATE_STORMS = {
    CLICK_LEFT: (0.5, 600, 60),
    CLICK_RIGHT: (0.9, 300, 120),
}
PLASTIC_BAR_DUSTY_HEALTH_MULTIPLIER = 0.5


def surface_panel_counts(sim: Simulation, surface_id: str) -> tuple[int, int]:
    """Return ``(clean, dusty)`` managed panel counts on a surface."""
    clean = 0
    dusty = 0
    for panel in sim.state.world.panels_on_surface(surface_id):
        if is_dusty_name(panel.name):
            dusty += 1
        else:
            clean += 1
    return clean, dusty


def _storm_module(sim: Simulation) -> DustStormModule | None:
    module = sim.get_rule_module(DustStormModule.name)
    return module if isinstance(module, DustStormModule) else None


def surface_output_kw(sim: Simulation, surface_id: str) -> float:
    """Current surface output in kW; 0 without a storm module to price the panels."""
    module = _storm_module(sim)
    if module is None:
        return 0.0
    return module.host.output_kw(surface_id)


def render_surface(sim: Simulation, surface_id: str) -> str:
    surface = sim.state.world.surfaces.get(surface_id)
    if surface is None:
        return f"surface={surface_id} <missing>"

    module = _storm_module(sim)
    phase = module.storm_phase(surface_id, sim.state.tick) if module is not None else PHASE_ABSENT
    clean, dusty = surface_panel_counts(sim, surface_id)
    ghosts = [ghost for ghost in sim.state.world.ghosts.values() if ghost.surface_id == surface_id]
    lines = [
        f"surface={surface_id} tick={sim.state.tick} "
        f"multiplier={surface.solar_power_multiplier:.3f} "
        f"clean={clean} dusty={dusty} ghosts={len(ghosts)} storm={phase}"
    ]

    cells: dict[tuple[float, float], str] = {}
    for ghost in ghosts:
        cells[(ghost.position_y, ghost.position_x)] = GHOST_GLYPH
    for panel in sim.state.world.panels_on_surface(surface_id):
        state = "dusty" if is_dusty_name(panel.name) else "clean"
        cells[(panel.position_y, panel.position_x)] = PANEL_GLYPHS[state]
    if not cells:
        return "\n".join(lines + ["<no panels>"])

    by_row: dict[float, list[str]] = {}
    for y, x in sorted(cells):
        by_row.setdefault(y, []).append(cells[(y, x)])
    for y in sorted(by_row):
        lines.append(f"y={y:>6.1f}: " + " ".join(by_row[y]))
    return "\n".join(lines)


class AsciiViewer:
    """Read-only projection of every surface for terminal display."""

    def render(self, sim: Simulation) -> str:
        surface_ids = sorted(sim.state.world.surfaces)
        if not surface_ids:
            return f"tick={sim.state.tick}\n<empty world>"
        return "\n".join(render_surface(sim, surface_id) for surface_id in surface_ids)


class SimulationController:
    """Maps player input onto storm commands; does not own state."""

    def __init__(self, sim: Simulation, surface_id: str) -> None:
        self.sim = sim
        self.surface_id = surface_id

    def create_storm(self, intensity: float, duration: int, ramp_duration: int) -> None:
        self._append(
            CREATE_STORM_COMMAND,
            {
                "surface_id": self.surface_id,
                "intensity": intensity,
                "duration": duration,
                "ramp_duration": ramp_duration,
            },
        )

    def create_storm_from_preset(self, preset_id: str) -> None:
        self._append(CREATE_STORM_COMMAND, {"surface_id": self.surface_id, "preset_id": preset_id})

    def force_clean(self) -> None:
        self._append(FORCE_CLEAN_COMMAND, {"surface_id": self.surface_id})

    def force_dusty(self, health_multiplier: float = PLASTIC_BAR_DUSTY_HEALTH_MULTIPLIER) -> None:
        self._append(FORCE_DUSTY_COMMAND, {"surface_id": self.surface_id, "health_multiplier": health_multiplier})

    def handle_click(self, button: str, cursor_item: str | None) -> str | None:
        """Issue the command bound to a click with ``cursor_item`` held.

        Returns the issued command type, or None when the click is unbound.
        """
        if cursor_item == CURSOR_IRON_PLATE and button in IRON_PLATE_STORMS:
            intensity, duration, ramp_duration = IRON_PLATE_STORMS[button]
            self.create_storm(intensity, duration, ramp_duration)
            return CREATE_STORM_COMMAND
        if cursor_item == CURSOR_PLASTIC_BAR and button == CLICK_LEFT:
            self.force_clean()
            return FORCE_CLEAN_COMMAND
        if cursor_item == CURSOR_PLASTIC_BAR and button == CLICK_RIGHT:
            self.force_dusty()
            return FORCE_DUSTY_COMMAND
        return None

    def advance_ticks(self, ticks: int) -> None:
        self.sim.advance_ticks(ticks)

    def _append(self, command_type: str, params: dict[str, object]) -> None:
        self.sim.append_command(SimCommand(tick=self.sim.state.tick, command_type=command_type, params=params))


def run_demo(map_path: str = DEFAULT_MAP_PATH, surface_id: str = "nauvis") -> None:
    sim, _ = load_storm_simulation(map_path, seed=7)

    view = AsciiViewer()
    controller = SimulationController(sim, surface_id)

    print("Dust storm demo. Commands: show | storm <preset> | clean | dusty | tick <n> | quit")
    print(view.render(sim))

    while True:
        raw = input("> ").strip()
        if raw in {"quit", "exit"}:
            break
        if raw == "show":
            print(view.render(sim))
            continue
        if raw == "clean":
            controller.force_clean()
            print("force clean queued")
            continue
        if raw == "dusty":
            controller.force_dusty()
            print("force dusty queued")
            continue

        parts = raw.split()
        if len(parts) == 2 and parts[0] == "storm":
            controller.create_storm_from_preset(parts[1])
            print("storm queued")
            continue
        if len(parts) == 2 and parts[0] == "tick":
            controller.advance_ticks(int(parts[1]))
            print(view.render(sim))
            continue

        print("unknown command")


if __name__ == "__main__":
    run_demo()
