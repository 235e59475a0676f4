from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from duststorm.content.prototypes import (
    DEFAULT_PROTOTYPES_PATH,
    GHOST_EFFECT_PREFIX,
    PrototypeRegistry,
    is_dusty_name,
    load_prototypes_json,
)
from duststorm.content.storms import DEFAULT_STORM_CONFIG_PATH, StormConfig, load_storm_config_json
from duststorm.sim.core import SimCommand, SimEvent, Simulation
from duststorm.sim.host import SCRIPT_TRIGGER_EVENT_TYPE, WorldPanelHost
from duststorm.sim.panel_queues import PanelHeap, SortedPanelStack
from duststorm.sim.panels import (
    check_clean_all_panels,
    force_clean_surface,
    force_dusty_surface,
    make_panel_dusty,
    repair_surface,
)
from duststorm.sim.periodic import PeriodicScheduler
from duststorm.sim.ramp import storm_multiplier
from duststorm.sim.rules import RuleModule
from duststorm.sim.sampling import sample_binomial_approx
from duststorm.sim.scoring import NoiseParams, score_panels

logger = logging.getLogger(__name__)

STORM_OUTCOME_EVENT_TYPE = "storm_outcome"
STORM_UPDATE_TASK = "dust_storms.update"
STORM_RNG_STREAM = "dust_storms"
MIN_RAMP_DURATION = 1.0

CREATE_STORM_COMMAND = "create_dust_storm"
FORCE_CLEAN_COMMAND = "force_clean_panels"
FORCE_DUSTY_COMMAND = "force_dusty_panels"
REPAIR_COMMAND = "repair_panels"

PHASE_ABSENT = "absent"
PHASE_RAMPING_UP = "ramping_up"
PHASE_STEADY = "steady"
PHASE_RAMPING_DOWN = "ramping_down"
PHASE_EXPIRED = "expired"


@dataclass
class StormRecord:
    intensity: float
    start_tick: int
    duration: float
    ramp_duration: float
    solar_panels: SortedPanelStack = field(default_factory=SortedPanelStack)
    additional_solar_panels: PanelHeap = field(default_factory=PanelHeap)
    noise_params: NoiseParams = field(default_factory=NoiseParams)

    @property
    def end_tick(self) -> float:
        return self.start_tick + self.duration

    def phase(self, tick: int) -> str:
        if tick > self.end_tick:
            return PHASE_EXPIRED
        if tick - self.start_tick < self.ramp_duration:
            return PHASE_RAMPING_UP
        if self.end_tick - tick < self.ramp_duration:
            return PHASE_RAMPING_DOWN
        return PHASE_STEADY

    def to_dict(self) -> dict[str, Any]:
        return {
            "intensity": self.intensity,
            "start_tick": self.start_tick,
            "duration": self.duration,
            "ramp_duration": self.ramp_duration,
            "solar_panels": self.solar_panels.to_payload(),
            "additional_solar_panels": self.additional_solar_panels.to_payload(),
            "noise_params": self.noise_params.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StormRecord":
        if not isinstance(data, dict):
            raise ValueError("storm record must be an object")
        return cls(
            intensity=float(data["intensity"]),
            start_tick=int(data["start_tick"]),
            duration=float(data["duration"]),
            ramp_duration=float(data["ramp_duration"]),
            solar_panels=SortedPanelStack.from_payload(data.get("solar_panels", [])),
            additional_solar_panels=PanelHeap.from_payload(data.get("additional_solar_panels", [])),
            noise_params=NoiseParams.from_dict(data.get("noise_params")),
        )


class StormStore:
    """Process-wide storm registry: one record per surface plus cached baselines."""

    def __init__(self) -> None:
        self.active_storms: dict[str, StormRecord] = {}
        self.original_solar: dict[str, float] = {}

    def initialize(self) -> None:
        self.active_storms = {}
        self.original_solar = {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_storms": {surface_id: record.to_dict() for surface_id, record in self.active_storms.items()},
            "original_solar": dict(sorted(self.original_solar.items())),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StormStore":
        store = cls()
        raw_storms = data.get("active_storms", {})
        if not isinstance(raw_storms, dict):
            raise ValueError("dust_storms.active_storms must be an object")
        for surface_id, row in raw_storms.items():
            store.active_storms[str(surface_id)] = StormRecord.from_dict(row)
        raw_original = data.get("original_solar", {})
        if not isinstance(raw_original, dict):
            raise ValueError("dust_storms.original_solar must be an object")
        store.original_solar = {str(surface_id): float(value) for surface_id, value in raw_original.items()}
        return store


class DustStormModule(RuleModule):
    """Creates, advances and expires dust storms on surfaces.

    Every ``tick_rate`` ticks the module updates each active storm (ramped
    solar multiplier, stochastic dusting, expiry) and then lets full-health
    dusty panels on every surface clean themselves.
    """

    name = "dust_storms"

    def __init__(
        self,
        *,
        prototypes: PrototypeRegistry | None = None,
        config: StormConfig | None = None,
        prototype_path: str = DEFAULT_PROTOTYPES_PATH,
        config_path: str = DEFAULT_STORM_CONFIG_PATH,
    ) -> None:
        self.prototypes = prototypes if prototypes is not None else load_prototypes_json(prototype_path)
        self.config = config if config is not None else load_storm_config_json(config_path)
        self.store = StormStore()
        self._dirty = False
        self._sim: Simulation | None = None
        self._host: WorldPanelHost | None = None

    @property
    def host(self) -> WorldPanelHost:
        if self._host is None:
            raise RuntimeError("dust_storms module is not registered on a simulation")
        return self._host

    @property
    def sim(self) -> Simulation:
        if self._sim is None:
            raise RuntimeError("dust_storms module is not registered on a simulation")
        return self._sim

    def on_simulation_start(self, sim: Simulation) -> None:
        scheduler = sim.get_rule_module(PeriodicScheduler.name)
        if scheduler is None:
            scheduler = PeriodicScheduler()
            sim.register_rule_module(scheduler)
        if not isinstance(scheduler, PeriodicScheduler):
            raise TypeError("periodic_scheduler module must be a PeriodicScheduler")

        self._sim = sim
        self._host = WorldPanelHost(sim, self.prototypes)
        self.store = StormStore.from_dict(sim.get_rules_state(self.name))
        self._dirty = True

        scheduler.register_task(task_name=STORM_UPDATE_TASK, interval_ticks=self.config.tick_rate, start_tick=0)
        scheduler.set_task_callback(STORM_UPDATE_TASK, self._on_periodic)

    def teardown(self) -> None:
        """Reset every storm-affected surface to its baseline and empty the registry."""
        for surface_id in list(self.store.active_storms):
            if self.host.get_surface(surface_id) is not None:
                self.set_solar_multiplier(surface_id, 1.0)
        self.store.initialize()
        self._dirty = True

    def active_storm(self, surface_id: str) -> StormRecord | None:
        return self.store.active_storms.get(surface_id)

    def storm_phase(self, surface_id: str, tick: int) -> str:
        record = self.store.active_storms.get(surface_id)
        if record is None:
            return PHASE_ABSENT
        return record.phase(tick)

    def get_original_solar(self, surface_id: str) -> float:
        if surface_id not in self.store.original_solar:
            current = self.host.get_solar_multiplier(surface_id)
            if current is None:
                return 1.0
            self.store.original_solar[surface_id] = current
            self._dirty = True
        return self.store.original_solar[surface_id]

    def set_solar_multiplier(self, surface_id: str, multiplier: float) -> None:
        self.host.set_solar_multiplier(surface_id, self.get_original_solar(surface_id) * multiplier)

    def create_dust_storm(
        self,
        surface_id: str,
        intensity: float,
        start_tick: int,
        duration: float,
        ramp_duration: float,
    ) -> str:
        """Install a storm on ``surface_id``; returns the outcome name.

        Rejections are reported and leave the registry untouched.
        """
        for field_name, value in (("intensity", intensity), ("duration", duration), ("ramp_duration", ramp_duration)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{field_name} must be numeric")
        if isinstance(start_tick, bool) or not isinstance(start_tick, int):
            raise ValueError("start_tick must be an integer")

        host = self.host
        if host.get_surface(surface_id) is None:
            return self._reject(surface_id, "unknown_surface", f"failed to create dust storm: unknown surface {surface_id}")
        if surface_id in self.store.active_storms:
            return self._reject(
                surface_id,
                "storm_already_active",
                f"failed to create dust storm on surface {surface_id}: storm already ongoing",
            )
        if not 0 <= intensity <= 1:
            return self._reject(
                surface_id,
                "invalid_intensity",
                f"failed to create dust storm on surface {surface_id} with intensity = {intensity}",
            )
        if not 0 < duration < math.inf:
            return self._reject(
                surface_id,
                "invalid_duration",
                f"failed to create dust storm on surface {surface_id} with duration = {duration}",
            )
        if not math.isfinite(ramp_duration):
            return self._reject(
                surface_id,
                "invalid_ramp_duration",
                f"failed to create dust storm on surface {surface_id} with ramp_duration = {ramp_duration}",
            )

        ramp = min(float(ramp_duration), duration / 2)
        if ramp <= 0:
            ramp = min(MIN_RAMP_DURATION, duration / 2)

        noise_params = NoiseParams(type="linear")
        eligible = [
            (panel.panel_id, panel.position_x, panel.position_y)
            for panel in host.find_panels(surface_id)
            if not is_dusty_name(panel.name)
        ]
        record = StormRecord(
            intensity=float(intensity),
            start_tick=start_tick,
            duration=float(duration),
            ramp_duration=ramp,
            solar_panels=SortedPanelStack(score_panels(eligible, noise_params)),
            additional_solar_panels=PanelHeap(),
            noise_params=noise_params,
        )
        self.store.active_storms[surface_id] = record
        self._dirty = True

        logger.info(
            "created storm on surface %s with intensity=%s and duration=%s",
            surface_id,
            intensity,
            duration,
        )
        self._record_outcome(
            surface_id,
            "created",
            intensity=float(intensity),
            start_tick=start_tick,
            duration=float(duration),
            ramp_duration=ramp,
            eligible_panels=len(record.solar_panels),
        )
        return "created"

    def create_storm_from_preset(self, surface_id: str, preset_id: str, start_tick: int) -> str:
        preset = self.config.presets_by_id().get(preset_id)
        if preset is None:
            return self._reject(surface_id, "unknown_preset", f"failed to create dust storm: unknown preset {preset_id}")
        return self.create_dust_storm(
            surface_id,
            intensity=preset.intensity,
            start_tick=start_tick,
            duration=preset.duration,
            ramp_duration=preset.ramp_duration,
        )

    def update_storms(self, tick: int) -> None:
        host = self.host
        storms_to_delete: list[str] = []
        for surface_id, storm in self.store.active_storms.items():
            try:
                if host.get_surface(surface_id) is None:
                    storms_to_delete.append(surface_id)
                    continue
                if tick > storm.end_tick:
                    self.set_solar_multiplier(surface_id, 1.0)
                    storms_to_delete.append(surface_id)
                    continue
                delta = min(tick - storm.start_tick, storm.end_tick - tick)
                if delta < storm.ramp_duration + self.config.tick_rate:
                    multiplier = storm_multiplier(delta, storm.ramp_duration, storm.intensity)
                    self.set_solar_multiplier(surface_id, multiplier)
                dusted = self.add_dust_from_storm(storm)
                if dusted:
                    self._record_outcome(surface_id, "dusted", panels=dusted, remaining=len(storm.solar_panels))
            except (KeyError, ValueError) as exc:
                host.report(f"dust storm update failed on surface {surface_id}: {exc}", surface_id=surface_id)

        for surface_id in storms_to_delete:
            del self.store.active_storms[surface_id]
            if host.get_surface(surface_id) is None:
                self.store.original_solar.pop(surface_id, None)
                self._record_outcome(surface_id, "dropped")
            else:
                self._record_outcome(surface_id, "expired")
        if storms_to_delete:
            self._dirty = True

    def add_dust_from_storm(self, storm: StormRecord) -> int:
        """Pop a binomially sampled number of panels off the storm and dust them."""
        probability = self.config.dust_probability_per_intensity * storm.intensity
        num_dusty = sample_binomial_approx(self.sim.rng_stream(STORM_RNG_STREAM), len(storm.solar_panels), probability)
        dusted = 0
        for _ in range(num_dusty):
            entry = storm.solar_panels.pop()
            if self.host.is_valid(entry.panel_id) and make_panel_dusty(self.host, entry.panel_id) is not None:
                dusted += 1
        if num_dusty:
            self._dirty = True
        return dusted

    def force_clean(self, surface_id: str) -> list[str]:
        return force_clean_surface(self.host, surface_id)

    def force_dusty(self, surface_id: str, health_multiplier: float | None = None) -> list[str]:
        if health_multiplier is None:
            health_multiplier = self.config.force_dusty_health_multiplier
        return force_dusty_surface(self.host, surface_id, health_multiplier)

    def repair(self, surface_id: str, amount: float) -> list[str]:
        return repair_surface(self.host, surface_id, amount)

    def on_command(self, sim: Simulation, command: SimCommand, command_index: int) -> bool:
        if command.command_type == CREATE_STORM_COMMAND:
            self._execute_create_command(command)
            return True
        if command.command_type == FORCE_CLEAN_COMMAND:
            surface_id = str(command.params.get("surface_id", ""))
            cleaned = self.force_clean(surface_id)
            self._record_outcome(surface_id, "force_cleaned", panels=len(cleaned))
            return True
        if command.command_type == FORCE_DUSTY_COMMAND:
            surface_id = str(command.params.get("surface_id", ""))
            raw_multiplier = command.params.get("health_multiplier")
            if raw_multiplier is not None and (isinstance(raw_multiplier, bool) or not isinstance(raw_multiplier, (int, float))):
                self._reject(surface_id, "invalid_params", f"force dusty rejected: bad health_multiplier {raw_multiplier!r}")
                return True
            dusted = self.force_dusty(surface_id, None if raw_multiplier is None else float(raw_multiplier))
            self._record_outcome(surface_id, "force_dusted", panels=len(dusted))
            return True
        if command.command_type == REPAIR_COMMAND:
            surface_id = str(command.params.get("surface_id", ""))
            amount = command.params.get("amount")
            if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not 0 <= amount < math.inf:
                self._reject(surface_id, "invalid_params", f"repair rejected: bad amount {amount!r}")
                return True
            repaired = self.repair(surface_id, float(amount))
            self._record_outcome(surface_id, "repaired", panels=len(repaired))
            return True
        return False

    def on_state_sync(self, sim: Simulation) -> None:
        if self._dirty:
            sim.set_rules_state(self.name, self.store.to_dict())
            self._dirty = False

    def on_event_executed(self, sim: Simulation, event: SimEvent) -> None:
        if event.event_type != SCRIPT_TRIGGER_EVENT_TYPE:
            return
        effect_id = str(event.params.get("effect_id", ""))
        if not effect_id.startswith(GHOST_EFFECT_PREFIX):
            return
        surface_id = str(event.params.get("surface_id", ""))
        if self.host.get_surface(surface_id) is None:
            return
        position = event.params.get("position", [0.0, 0.0])
        self.host.create_ghost(
            surface_id=surface_id,
            inner_name=effect_id[len(GHOST_EFFECT_PREFIX):],
            position=(float(position[0]), float(position[1])),
            force=str(event.params.get("force", "player")),
            expires=True,
        )

    def _execute_create_command(self, command: SimCommand) -> None:
        params = command.params
        surface_id = str(params.get("surface_id", ""))
        start_tick = params.get("start_tick", command.tick)
        if isinstance(start_tick, bool) or not isinstance(start_tick, int):
            self._reject(surface_id, "invalid_params", f"create dust storm rejected: bad start_tick {start_tick!r}")
            return

        preset_id = params.get("preset_id")
        if preset_id is not None:
            self.create_storm_from_preset(surface_id, str(preset_id), start_tick)
            return

        values = [params.get(key) for key in ("intensity", "duration", "ramp_duration")]
        if any(isinstance(value, bool) or not isinstance(value, (int, float)) for value in values):
            self._reject(surface_id, "invalid_params", "create dust storm rejected: intensity, duration and ramp_duration must be numeric")
            return
        intensity, duration, ramp_duration = values
        self.create_dust_storm(surface_id, intensity, start_tick, duration, ramp_duration)

    def _on_periodic(self, sim: Simulation, tick: int) -> None:
        self.update_storms(tick)
        for surface_id in self.host.surface_ids():
            check_clean_all_panels(self.host, surface_id)

    def _reject(self, surface_id: str, outcome: str, message: str) -> str:
        self.host.report(message, surface_id=surface_id, outcome=outcome)
        self._record_outcome(surface_id, outcome)
        return outcome

    def _record_outcome(self, surface_id: str, outcome: str, **details: Any) -> None:
        self.sim.record_outcome(
            event_type=STORM_OUTCOME_EVENT_TYPE,
            key=f"storm:{self.sim.state.tick}:{surface_id}:{outcome}",
            params={"surface_id": surface_id, "outcome": outcome, **details},
        )

