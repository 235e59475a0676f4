from __future__ import annotations

import copy
import hashlib
import heapq
import random
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from duststorm.sim.rules import RuleModule
from duststorm.sim.sampling import derive_stream_seed
from duststorm.sim.world import WorldState

RNG_SIM_STREAM_NAME = "rng_sim"
MAX_EVENT_TRACE = 256
MAX_EVENTS_PER_TICK = 10_000
SIMULATION_SCHEMA_VERSION = 1
EVENT_ID_PREFIX = "evt-"
TRACE_FIELDS = ("tick", "event_id", "event_type", "params")


def validate_json_value(value: Any, *, field_name: str) -> None:
    """Reject anything that would not survive a canonical JSON round-trip."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return
    if isinstance(value, dict):
        if any(not isinstance(key, str) for key in value):
            raise ValueError(f"{field_name} keys must be strings")
        children = list(value.values())
    elif isinstance(value, list):
        children = value
    else:
        raise ValueError(f"{field_name} must contain only canonical JSON primitives")
    for child in children:
        validate_json_value(child, field_name=field_name)


def _as_rng_state(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_as_rng_state(item) for item in value)
    return value


def _require_tick(value: Any, *, kind: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{kind} tick must be a non-negative integer")


def _require_label(value: Any, *, field_name: str) -> None:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{field_name} must be a non-empty string")


def _require_params(value: Any) -> None:
    if not isinstance(value, dict):
        raise ValueError("params must be a dict")
    validate_json_value(value, field_name="params")


@dataclass
class SimCommand:
    """Player or tool input applied at ``tick``; fields we do not know survive saves."""

    tick: int
    command_type: str
    params: dict[str, Any]
    unknown_fields: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require_tick(self.tick, kind="command")
        _require_label(self.command_type, field_name="command_type")
        _require_params(self.params)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.unknown_fields,
            "tick": self.tick,
            "command_type": self.command_type,
            "params": self.params,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SimCommand":
        extra = {key: value for key, value in data.items() if key not in ("tick", "command_type", "params")}
        return cls(
            tick=int(data["tick"]),
            command_type=str(data["command_type"]),
            params=dict(data.get("params", {})),
            unknown_fields=extra,
        )


@dataclass
class SimEvent:
    tick: int
    event_id: str
    event_type: str
    params: dict[str, Any]

    def __post_init__(self) -> None:
        _require_tick(self.tick, kind="event")
        _require_label(self.event_id, field_name="event_id")
        _require_label(self.event_type, field_name="event_type")
        _require_params(self.params)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick": self.tick,
            "event_id": self.event_id,
            "event_type": self.event_type,
            "params": self.params,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SimEvent":
        return cls(
            tick=int(data["tick"]),
            event_id=str(data["event_id"]),
            event_type=str(data["event_type"]),
            params=dict(data.get("params", {})),
        )


class EventQueue:
    """Scheduled events ordered by (tick, scheduling order).

    Cancelled events stay in the heap and are skipped when they surface.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[int, int, str]] = []
        self._live: dict[str, SimEvent] = {}
        self._sequence = 0

    def __len__(self) -> int:
        return len(self._live)

    def push(self, event: SimEvent) -> None:
        if event.event_id in self._live:
            raise ValueError(f"duplicate event_id: {event.event_id}")
        self._live[event.event_id] = event
        heapq.heappush(self._heap, (event.tick, self._sequence, event.event_id))
        self._sequence += 1

    def cancel(self, event_id: str) -> bool:
        return self._live.pop(event_id, None) is not None

    def pop_due(self, tick: int) -> SimEvent | None:
        while self._heap and self._heap[0][0] <= tick:
            _, _, event_id = heapq.heappop(self._heap)
            event = self._live.pop(event_id, None)
            if event is not None:
                return event
        return None

    def pending(self) -> list[SimEvent]:
        return [self._live[event_id] for _, _, event_id in sorted(self._heap) if event_id in self._live]


class RngStreams:
    """Named ``random.Random`` streams, each seeded from the master seed and its name."""

    def __init__(self, master_seed: int) -> None:
        self.master_seed = master_seed
        self._streams: dict[str, random.Random] = {}
        self.get(RNG_SIM_STREAM_NAME)

    def get(self, name: str) -> random.Random:
        stream = self._streams.get(name)
        if stream is None:
            stream = random.Random(derive_stream_seed(master_seed=self.master_seed, stream_name=name))
            self._streams[name] = stream
        return stream

    def to_payload(self) -> dict[str, Any]:
        return {
            "master_seed": self.master_seed,
            "rng_stream_states": {name: self._streams[name].getstate() for name in sorted(self._streams)},
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RngStreams":
        states = payload.get("rng_stream_states")
        if not isinstance(states, dict):
            raise ValueError("rng_state.rng_stream_states must be an object")
        streams = cls(int(payload["master_seed"]))
        for name in sorted(states):
            streams.get(name).setstate(_as_rng_state(states[name]))
        return streams


def _checked_trace_entry(entry: Any) -> dict[str, Any]:
    if not isinstance(entry, dict):
        raise ValueError("event_trace entries must be objects")
    if any(name not in entry for name in TRACE_FIELDS):
        raise ValueError("event_trace entries missing required fields")
    tick = entry["tick"]
    if isinstance(tick, bool) or not isinstance(tick, int) or tick < 0:
        raise ValueError("event_trace tick must be a non-negative integer")
    if isinstance(entry["event_id"], bool) or not isinstance(entry["event_id"], int):
        raise ValueError("event_trace event_id must be an integer")
    _require_label(entry["event_type"], field_name="event_trace event_type")
    if not isinstance(entry["params"], dict):
        raise ValueError("event_trace params must be an object")
    validate_json_value(entry["params"], field_name="event_trace.params")
    return copy.deepcopy(entry)


@dataclass
class SimulationState:
    world: WorldState
    tick: int = 0
    rules_state: dict[str, dict[str, Any]] = field(default_factory=dict)
    event_trace: list[dict[str, Any]] = field(default_factory=list)


class Simulation:
    """Authoritative tick loop.

    Each tick runs ``on_tick_start`` hooks, then the commands queued for the
    tick, then every event due at the tick (including events scheduled while
    draining), then ``on_tick_end`` hooks.
    """

    def __init__(self, world: WorldState, seed: int) -> None:
        self.state = SimulationState(world=world)
        self.seed = seed
        self.rng = RngStreams(seed)
        self.rule_modules: list[RuleModule] = []
        self.input_log: list[SimCommand] = []
        self.save_metadata: dict[str, Any] = {}
        self._commands_by_tick: dict[int, list[SimCommand]] = defaultdict(list)
        self._events = EventQueue()
        self.next_event_counter = 1

    @property
    def master_seed(self) -> int:
        return self.rng.master_seed

    @property
    def rng_sim(self) -> random.Random:
        return self.rng.get(RNG_SIM_STREAM_NAME)

    def rng_stream(self, name: str) -> random.Random:
        return self.rng.get(name)

    def rng_state_payload(self) -> dict[str, Any]:
        return self.rng.to_payload()

    def restore_rng_state(self, payload: dict[str, Any]) -> None:
        self.rng = RngStreams.from_payload(payload)

    def append_command(self, command: SimCommand | dict[str, Any]) -> None:
        if not isinstance(command, SimCommand):
            command = SimCommand.from_dict(command)
        self.input_log.append(command)
        self._commands_by_tick[command.tick].append(command)

    def schedule_event(self, event: SimEvent) -> None:
        self._events.push(event)

    def schedule_event_at(self, tick: int, event_type: str, params: dict[str, Any]) -> str:
        event_id = f"{EVENT_ID_PREFIX}{self.next_event_counter:08d}"
        self.next_event_counter += 1
        self.schedule_event(SimEvent(tick=tick, event_id=event_id, event_type=event_type, params=params))
        return event_id

    def cancel_event(self, event_id: str) -> bool:
        return self._events.cancel(event_id)

    def pending_events(self) -> list[SimEvent]:
        return self._events.pending()

    def get_event_trace(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.state.event_trace)

    def advance_ticks(self, ticks: int) -> None:
        for _ in range(ticks):
            self._tick_once()

    def get_rule_module(self, module_name: str) -> RuleModule | None:
        return next((module for module in self.rule_modules if module.name == module_name), None)

    def register_rule_module(self, module: RuleModule) -> None:
        if self.get_rule_module(module.name) is not None:
            raise ValueError(f"duplicate rule module name: {module.name}")
        self.rule_modules.append(module)
        module.on_simulation_start(self)

    def sync_rules_state(self) -> None:
        """Let every module flush pending state before rules_state is read."""
        for module in self.rule_modules:
            module.on_state_sync(self)

    def get_rules_state(self, module_name: str) -> dict[str, Any]:
        self.sync_rules_state()
        return copy.deepcopy(self.state.rules_state.get(module_name, {}))

    def set_rules_state(self, module_name: str, state: dict[str, Any]) -> None:
        _require_label(module_name, field_name="module_name")
        if not isinstance(state, dict):
            raise ValueError("rules_state value must be a dict")
        validate_json_value(state, field_name="rules_state")
        self.state.rules_state[module_name] = copy.deepcopy(state)

    def append_event_trace_entry(self, entry: dict[str, Any]) -> None:
        trace = self.state.event_trace
        trace.append(_checked_trace_entry(entry))
        if len(trace) > MAX_EVENT_TRACE:
            del trace[: len(trace) - MAX_EVENT_TRACE]

    def record_outcome(self, *, event_type: str, key: str, params: dict[str, Any]) -> None:
        """Append a module outcome to the trace under a stable hashed id."""
        self.append_event_trace_entry(
            {
                "tick": self.state.tick,
                "event_id": self.trace_event_id_as_int(key),
                "event_type": event_type,
                "params": params,
            }
        )

    @staticmethod
    def trace_event_id_as_int(event_id: str) -> int:
        suffix = event_id[len(EVENT_ID_PREFIX):]
        if event_id.startswith(EVENT_ID_PREFIX) and suffix.isdigit():
            return int(suffix)
        return int(hashlib.sha256(event_id.encode("utf-8")).hexdigest()[:16], 16)

    def simulation_payload(self) -> dict[str, Any]:
        self.sync_rules_state()
        return {
            "schema_version": SIMULATION_SCHEMA_VERSION,
            "seed": self.seed,
            "master_seed": self.master_seed,
            "tick": self.state.tick,
            "next_event_counter": self.next_event_counter,
            "rng_state": self.rng_state_payload(),
            "rules_state": dict(sorted(self.state.rules_state.items())),
            "world": self.state.world.to_dict(),
            "input_log": [command.to_dict() for command in self.input_log],
            "pending_events": [event.to_dict() for event in self.pending_events()],
            "event_trace": self.get_event_trace(),
        }

    @classmethod
    def from_simulation_payload(cls, payload: dict[str, Any]) -> "Simulation":
        schema_version = int(payload["schema_version"])
        if schema_version != SIMULATION_SCHEMA_VERSION:
            raise ValueError(f"unsupported simulation schema_version: {schema_version}")

        sim = cls(world=WorldState.from_dict(payload["world"]), seed=int(payload.get("master_seed", payload["seed"])))
        sim.seed = int(payload["seed"])
        sim.state.tick = int(payload["tick"])
        sim.next_event_counter = int(payload.get("next_event_counter", 1))

        rules_state = payload.get("rules_state", {})
        if not isinstance(rules_state, dict):
            raise ValueError("rules_state must be an object")
        for module_name, module_state in rules_state.items():
            if not isinstance(module_state, dict):
                raise ValueError("rules_state entries must be objects")
            sim.set_rules_state(module_name, module_state)

        for row in payload.get("input_log", []):
            sim.append_command(SimCommand.from_dict(row))
        for row in payload.get("pending_events", []):
            sim.schedule_event(SimEvent.from_dict(row))

        event_trace = payload.get("event_trace", [])
        if not isinstance(event_trace, list):
            raise ValueError("event_trace must be a list")
        for entry in event_trace:
            sim.append_event_trace_entry(entry)

        if "rng_state" in payload:
            sim.restore_rng_state(payload["rng_state"])
        return sim

    def _tick_once(self) -> None:
        tick = self.state.tick
        for module in self.rule_modules:
            module.on_tick_start(self, tick)
        for index, command in enumerate(self._commands_by_tick.get(tick, [])):
            # First module to claim a command consumes it.
            for module in self.rule_modules:
                if module.on_command(self, command, index):
                    break
        self._drain_events(tick)
        for module in self.rule_modules:
            module.on_tick_end(self, tick)
        self.state.tick = tick + 1

    def _drain_events(self, tick: int) -> None:
        executed = 0
        event = self._events.pop_due(tick)
        while event is not None:
            executed += 1
            if executed > MAX_EVENTS_PER_TICK:
                raise RuntimeError(
                    f"event execution guard tripped at tick {tick}; exceeded MAX_EVENTS_PER_TICK={MAX_EVENTS_PER_TICK}"
                )
            for module in self.rule_modules:
                module.on_event_executed(self, event)
            self.append_event_trace_entry(
                {
                    "tick": tick,
                    "event_id": self.trace_event_id_as_int(event.event_id),
                    "event_type": event.event_type,
                    "params": copy.deepcopy(event.params),
                }
            )
            event = self._events.pop_due(tick)
