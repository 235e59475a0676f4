from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from duststorm.content.io import is_canonical_save_payload, load_world_json, save_game_json
from duststorm.sim.core import Simulation
from duststorm.sim.hash import world_hash


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="duststorm-new-save",
        description=(
            "Convert a surfaces/panels map JSON into a canonical game save JSON "
            "(world_state + simulation_state + input_log + save_hash)."
        ),
    )
    parser.add_argument("map_path", help="Path to map JSON (surfaces and panels)")
    parser.add_argument("save_path", help="Output path for canonical game save JSON")
    parser.add_argument("--seed", type=int, default=0, help="Simulation seed for the new canonical save (default: 0)")
    parser.add_argument("--force", action="store_true", help="Overwrite output path if it already exists")
    parser.add_argument(
        "--print-summary",
        action="store_true",
        help="Print surface and panel counts",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    map_path = Path(args.map_path)
    save_path = Path(args.save_path)

    try:
        if not map_path.exists():
            raise ValueError(f"input map_path does not exist: {map_path}")

        if is_canonical_save_payload(json.loads(map_path.read_text(encoding="utf-8"))):
            raise ValueError("input is already canonical save; use duststorm-storm instead")

        if save_path.exists() and not args.force:
            raise ValueError(f"output exists: {save_path} (use --force to overwrite)")

        world = load_world_json(map_path)
        simulation = Simulation(world=world, seed=args.seed)
        save_game_json(save_path, simulation)

        save_payload = json.loads(save_path.read_text(encoding="utf-8"))
        if args.print_summary:
            for surface_id in sorted(world.surfaces):
                print(
                    "summary "
                    f"surface_id={surface_id} "
                    f"solar_power_multiplier={world.surfaces[surface_id].solar_power_multiplier} "
                    f"panel_count={len(world.panels_on_surface(surface_id))}"
                )

        print(
            "ok "
            f"save_path={save_path} "
            f"seed={simulation.seed} "
            f"world_hash={world_hash(world)} "
            f"save_hash={save_payload['save_hash']}"
        )
    except Exception as exc:
        print(f"error: {exc}")
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
