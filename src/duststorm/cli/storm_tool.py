from __future__ import annotations

import argparse
from collections import Counter
from typing import Sequence

from duststorm.cli.viewer import render_surface, surface_output_kw, surface_panel_counts
from duststorm.content.io import load_storm_simulation, save_game_json
from duststorm.content.prototypes import DEFAULT_PROTOTYPES_PATH, load_prototypes_json
from duststorm.content.storms import DEFAULT_STORM_CONFIG_PATH, load_storm_config_json
from duststorm.sim.core import SimCommand, Simulation
from duststorm.sim.hash import simulation_hash
from duststorm.sim.host import HOST_REPORT_EVENT_TYPE
from duststorm.sim.storms import CREATE_STORM_COMMAND, STORM_OUTCOME_EVENT_TYPE, DustStormModule

OUTCOME_PRINT_LIMIT = 20


def _non_negative_int(value: str) -> int:
    parsed = int(value)
    if parsed < 0:
        raise argparse.ArgumentTypeError("ticks must be >= 0")
    return parsed


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="duststorm-storm",
        description=(
            "Start a dust storm on a surface of a map or canonical save, advance N ticks "
            "and report the solar multiplier and dusty panel counts."
        ),
    )
    parser.add_argument("path", help="Path to map JSON or canonical game save JSON")
    parser.add_argument("--surface", help="Surface to start a storm on; omit to only advance existing storms")
    parser.add_argument("--preset", help="Storm preset id from the storm config")
    parser.add_argument("--intensity", type=float, default=0.5, help="Storm intensity in [0, 1] (default: 0.5)")
    parser.add_argument("--duration", type=int, default=600, help="Storm duration in ticks (default: 600)")
    parser.add_argument("--ramp-duration", type=int, default=60, help="Ramp up/down duration in ticks (default: 60)")
    parser.add_argument("--start-tick", type=_non_negative_int, help="Storm start tick (default: current tick)")
    parser.add_argument("--ticks", type=_non_negative_int, default=0, help="Ticks to advance")
    parser.add_argument("--seed", type=int, default=0, help="Seed used when starting from a map (default: 0)")
    parser.add_argument("--config", default=DEFAULT_STORM_CONFIG_PATH, help="Storm config JSON path")
    parser.add_argument("--prototypes", default=DEFAULT_PROTOTYPES_PATH, help="Solar panel prototypes JSON path")
    parser.add_argument(
        "--per-period",
        action="store_true",
        help="Print multiplier, panel counts and output after every storm update period",
    )
    parser.add_argument("--print-outcomes", action="store_true", help="Print recent storm outcomes and host reports")
    parser.add_argument("--render", action="store_true", help="Print an ASCII map of every surface after the run")
    parser.add_argument("--dump-final-save", help="Optional path to write canonical save payload after the run")
    return parser


def _storm_params(args: argparse.Namespace, tick: int) -> dict[str, object]:
    params: dict[str, object] = {"surface_id": args.surface}
    if args.preset:
        params["preset_id"] = args.preset
    else:
        params.update(
            {
                "intensity": args.intensity,
                "duration": args.duration,
                "ramp_duration": args.ramp_duration,
            }
        )
    params["start_tick"] = tick if args.start_tick is None else args.start_tick
    return params


def _print_period(simulation: Simulation, module: DustStormModule) -> None:
    for surface_id in sorted(simulation.state.world.surfaces):
        surface = simulation.state.world.surfaces[surface_id]
        clean, dusty = surface_panel_counts(simulation, surface_id)
        print(
            f"tick={simulation.state.tick} "
            f"surface={surface_id} "
            f"multiplier={surface.solar_power_multiplier:.6f} "
            f"clean={clean} "
            f"dusty={dusty} "
            f"storm={module.storm_phase(surface_id, simulation.state.tick)} "
            f"output_kw={surface_output_kw(simulation, surface_id):.1f}"
        )


def _print_outcomes(simulation: Simulation) -> None:
    print(f"outcomes.limit={OUTCOME_PRINT_LIMIT}")
    entries = [
        entry
        for entry in simulation.get_event_trace()
        if entry.get("event_type") in (STORM_OUTCOME_EVENT_TYPE, HOST_REPORT_EVENT_TYPE)
    ]
    if not entries:
        print("outcome none")
    for entry in entries[-OUTCOME_PRINT_LIMIT:]:
        params = entry.get("params")
        params = params if isinstance(params, dict) else {}
        if entry["event_type"] == HOST_REPORT_EVENT_TYPE:
            print(f"report tick={entry.get('tick', '?')} message={params.get('message', '?')}")
            continue
        print(
            "outcome "
            f"tick={entry.get('tick', '?')} "
            f"surface={params.get('surface_id', '?')} "
            f"outcome={params.get('outcome', '?')}"
        )


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        simulation, module = load_storm_simulation(
            args.path,
            seed=args.seed,
            prototypes=load_prototypes_json(args.prototypes),
            config=load_storm_config_json(args.config),
        )
        print(
            "header "
            f"tick={simulation.state.tick} "
            f"surface_count={len(simulation.state.world.surfaces)} "
            f"panel_count={len(simulation.state.world.panels)} "
            f"active_storms={len(module.store.active_storms)}"
        )

        if args.surface:
            simulation.append_command(
                SimCommand(
                    tick=simulation.state.tick,
                    command_type=CREATE_STORM_COMMAND,
                    params=_storm_params(args, simulation.state.tick),
                )
            )

        print(f"start_hash={simulation_hash(simulation)}")

        if args.per_period:
            period = module.config.tick_rate
            remaining = args.ticks
            while remaining > 0:
                step = min(period, remaining)
                simulation.advance_ticks(step)
                remaining -= step
                _print_period(simulation, module)
        else:
            simulation.advance_ticks(args.ticks)

        print(f"end_hash={simulation_hash(simulation)}")
        counts = Counter(
            entry["params"].get("outcome")
            for entry in simulation.get_event_trace()
            if entry.get("event_type") == STORM_OUTCOME_EVENT_TYPE
        )
        summary = " ".join(f"{outcome}={counts[outcome]}" for outcome in sorted(counts)) or "none"
        print(f"outcome_summary {summary}")

        if args.print_outcomes:
            _print_outcomes(simulation)

        if args.render:
            for surface_id in sorted(simulation.state.world.surfaces):
                print(render_surface(simulation, surface_id))

        if args.dump_final_save:
            save_game_json(args.dump_final_save, simulation)
            print(f"dumped_final_save={args.dump_final_save}")

    except Exception as exc:
        print(f"error: {exc}")
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
