from __future__ import annotations

import argparse
import importlib.metadata
import json
import os
import platform
import sys
from pathlib import Path
from typing import Any

from duststorm.cli.viewer import (
    CLICK_LEFT,
    CLICK_RIGHT,
    CURSOR_COPPER_PLATE,
    CURSOR_IRON_PLATE,
    CURSOR_PLASTIC_BAR,
    DEFAULT_MAP_PATH,
    SimulationController,
    surface_output_kw,
    surface_panel_counts,
)
from duststorm.content.io import load_storm_simulation, save_game_json
from duststorm.content.prototypes import PanelPrototype
from duststorm.sim.core import Simulation
from duststorm.sim.hash import simulation_hash, world_hash
from duststorm.sim.storms import STORM_OUTCOME_EVENT_TYPE, DustStormModule

WINDOW_SIZE = (1280, 800)
SIM_TICK_SECONDS = 1.0 / 60.0
CELL_PIXELS = 24
PANEL_PIXELS = 20
VIEWPORT_ORIGIN = (40, 140)
OUTCOME_LINES = 8
DEFAULT_SAVE_PATH = "saves/session_save.json"
DEFAULT_SEED = 7

CURSOR_KEYS = {
    "1": CURSOR_IRON_PLATE,
    "2": CURSOR_PLASTIC_BAR,
    "3": CURSOR_COPPER_PLATE,
}
CLEAN_COLOR = (70, 110, 190)
GHOST_COLOR = (120, 200, 230)

pygame: Any | None = None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="duststorm-viewer",
        description="Run the dust storm pygame viewer.",
    )
    parser.add_argument(
        "--map-path",
        default=DEFAULT_MAP_PATH,
        help="Path to surfaces/panels map JSON.",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Force SDL dummy video driver for CI/testing and exit without opening a real window.",
    )
    parser.add_argument(
        "--load-save",
        help="Optional canonical save JSON path to load simulation state on startup.",
    )
    parser.add_argument(
        "--save-path",
        default=DEFAULT_SAVE_PATH,
        help="Canonical save JSON path used by F5 save and F9 load.",
    )
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Seed used when starting from a map.")
    return parser


def _env_flag_enabled(var_name: str) -> bool:
    return os.environ.get(var_name, "").strip().lower() in {"1", "true", "yes", "on"}


def _print_startup_banner() -> None:
    try:
        pygame_version = importlib.metadata.version("pygame")
    except importlib.metadata.PackageNotFoundError:
        pygame_version = "not-installed"
    print(
        "[duststorm.viewer] startup "
        f"python={platform.python_version()} "
        f"pygame={pygame_version} "
        f"platform={platform.platform()}"
    )
    for name in ("SDL_VIDEODRIVER", "SDL_AUDIODRIVER"):
        value = os.environ.get(name, "<unset>")
        print(f"[duststorm.viewer] env {name}={value}")


def _ensure_pygame_imported() -> Any:
    global pygame
    if pygame is None:
        import pygame as pygame_module

        pygame = pygame_module
    return pygame


def _load_viewer_simulation(path: str, *, seed: int) -> Simulation:
    sim, _ = load_storm_simulation(path, seed=seed)
    print(
        "[duststorm.viewer] loaded "
        f"path={path} tick={sim.state.tick} "
        f"input_log={len(sim.input_log)} "
        f"world_hash={world_hash(sim.state.world)} "
        f"simulation_hash={simulation_hash(sim)}"
    )
    return sim


def _save_viewer_simulation(sim: Simulation, save_path: str) -> None:
    save_game_json(save_path, sim)
    payload = json.loads(Path(save_path).read_text(encoding="utf-8"))
    print(
        "[duststorm.viewer] saved "
        f"path={save_path} "
        f"save_hash={payload.get('save_hash', '<missing>')} "
        f"simulation_hash={simulation_hash(sim)}"
    )


def _panel_rect(x: float, y: float) -> tuple[int, int, int, int]:
    return (
        int(VIEWPORT_ORIGIN[0] + x * CELL_PIXELS),
        int(VIEWPORT_ORIGIN[1] + y * CELL_PIXELS),
        PANEL_PIXELS,
        PANEL_PIXELS,
    )


def _panel_color(prototype: PanelPrototype | None) -> tuple[int, int, int]:
    """Base panel colour multiplied by the prototype tint; dusty variants carry theirs."""
    if prototype is None or prototype.tint is None:
        return CLEAN_COLOR
    return (
        int(CLEAN_COLOR[0] * prototype.tint[0]),
        int(CLEAN_COLOR[1] * prototype.tint[1]),
        int(CLEAN_COLOR[2] * prototype.tint[2]),
    )


def _draw_surface(screen: Any, sim: Simulation, surface_id: str) -> None:
    for ghost in sim.state.world.ghosts.values():
        if ghost.surface_id == surface_id:
            pygame.draw.rect(screen, GHOST_COLOR, _panel_rect(ghost.position_x, ghost.position_y), 1)
    module = sim.get_rule_module(DustStormModule.name)
    prototypes = module.prototypes if isinstance(module, DustStormModule) else None
    for panel in sim.state.world.panels_on_surface(surface_id):
        color = _panel_color(prototypes.get(panel.name) if prototypes is not None else None)
        pygame.draw.rect(screen, color, _panel_rect(panel.position_x, panel.position_y))


def _hud_lines(sim: Simulation, surface_id: str, cursor_item: str, status_message: str | None) -> list[str]:
    surface = sim.state.world.surfaces[surface_id]
    module = sim.get_rule_module(DustStormModule.name)
    phase = module.storm_phase(surface_id, sim.state.tick) if isinstance(module, DustStormModule) else "absent"
    clean, dusty = surface_panel_counts(sim, surface_id)
    lines = [
        f"surface={surface_id} | tick={sim.state.tick} | multiplier={surface.solar_power_multiplier:.3f} | storm={phase}",
        f"clean={clean} dusty={dusty} | cursor={cursor_item}",
        f"output={surface_output_kw(sim, surface_id):.1f} kW",
        "1 iron | 2 plastic | 3 copper | LMB/RMB use | TAB surface | F5 save | F9 load | ESC quit",
    ]
    if status_message:
        lines.append(f"status: {status_message}")
    return lines


def _recent_outcome_lines(sim: Simulation) -> list[str]:
    outcomes = [entry for entry in sim.get_event_trace() if entry.get("event_type") == STORM_OUTCOME_EVENT_TYPE]
    lines = []
    for entry in reversed(outcomes[-OUTCOME_LINES:]):
        params = entry["params"]
        lines.append(f"tick={entry['tick']} {params.get('surface_id', '?')} {params.get('outcome', '?')}")
    return lines


def run_pygame_viewer(
    map_path: str = DEFAULT_MAP_PATH,
    *,
    headless: bool = False,
    load_save: str | None = None,
    save_path: str = DEFAULT_SAVE_PATH,
    seed: int = DEFAULT_SEED,
) -> int:
    if headless:
        os.environ["SDL_VIDEODRIVER"] = "dummy"
        print("[duststorm.viewer] warning: headless mode active; no window will open.")

    _print_startup_banner()
    pygame_module = _ensure_pygame_imported()

    try:
        pygame_module.init()
    except Exception as exc:
        print(
            "[duststorm.viewer] failed during pygame.init(): "
            f"{exc}. Hint: set SDL_VIDEODRIVER=dummy for headless mode.",
            file=sys.stderr,
        )
        return 1

    try:
        sim = _load_viewer_simulation(load_save or map_path, seed=seed)
    except Exception as exc:
        print(f"[duststorm.viewer] failed to initialize simulation: {exc}", file=sys.stderr)
        pygame_module.quit()
        return 1

    surface_ids = sorted(sim.state.world.surfaces)
    if not surface_ids:
        print("[duststorm.viewer] map has no surfaces", file=sys.stderr)
        pygame_module.quit()
        return 1
    controller = SimulationController(sim, surface_ids[0])

    try:
        pygame_module.display.set_caption("Dust Storm Viewer")
        screen = pygame_module.display.set_mode(WINDOW_SIZE)
    except Exception as exc:
        print(
            "[duststorm.viewer] failed during pygame.display.set_mode(...): "
            f"{exc}. Hint: use --headless or DUSTSTORM_HEADLESS=1 without a display.",
            file=sys.stderr,
        )
        pygame_module.quit()
        return 1

    print(f"[duststorm.viewer] display initialized: {pygame_module.display.get_driver()}, window size={WINDOW_SIZE}")

    if headless:
        controller.advance_ticks(1)
        pygame_module.quit()
        return 0

    clock = pygame_module.time.Clock()
    font = pygame_module.font.SysFont("consolas", 20)
    small_font = pygame_module.font.SysFont("consolas", 15)
    cursor_item = CURSOR_IRON_PLATE
    status_message: str | None = None
    accumulator = 0.0
    running = True

    while running:
        accumulator += clock.tick(60) / 1000.0

        for event in pygame_module.event.get():
            if event.type == pygame_module.QUIT:
                running = False
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_ESCAPE:
                running = False
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_TAB:
                index = surface_ids.index(controller.surface_id)
                controller.surface_id = surface_ids[(index + 1) % len(surface_ids)]
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_F5:
                _save_viewer_simulation(controller.sim, save_path)
                status_message = f"saved {save_path}"
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_F9:
                if Path(save_path).exists():
                    try:
                        controller.sim = _load_viewer_simulation(save_path, seed=seed)
                        status_message = f"loaded {save_path}"
                    except Exception as exc:
                        status_message = f"load failed: {exc}"
                        print(f"[duststorm.viewer] load failed path={save_path}: {exc}", file=sys.stderr)
                else:
                    status_message = f"load failed: file not found ({save_path})"
            elif event.type == pygame_module.KEYDOWN and event.unicode in CURSOR_KEYS:
                cursor_item = CURSOR_KEYS[event.unicode]
            elif event.type == pygame_module.MOUSEBUTTONDOWN and event.button in (1, 3):
                button = CLICK_LEFT if event.button == 1 else CLICK_RIGHT
                issued = controller.handle_click(button, cursor_item)
                status_message = f"{issued} queued" if issued else None

        while accumulator >= SIM_TICK_SECONDS:
            controller.advance_ticks(1)
            accumulator -= SIM_TICK_SECONDS

        sim = controller.sim
        screen.fill((24, 20, 17))
        _draw_surface(screen, sim, controller.surface_id)
        y = 12
        for line in _hud_lines(sim, controller.surface_id, cursor_item, status_message):
            screen.blit(font.render(line, True, (240, 240, 240)), (12, y))
            y += 24
        y = 12
        for line in _recent_outcome_lines(sim):
            screen.blit(small_font.render(line, True, (210, 200, 180)), (WINDOW_SIZE[0] - 360, y))
            y += 18
        pygame_module.display.flip()

    pygame_module.quit()
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    headless = args.headless or _env_flag_enabled("DUSTSTORM_HEADLESS")
    raise SystemExit(
        run_pygame_viewer(
            map_path=args.map_path,
            headless=headless,
            load_save=args.load_save,
            save_path=args.save_path,
            seed=args.seed,
        )
    )


if __name__ == "__main__":
    main()
