from __future__ import annotations

from collections.abc import Callable

from duststorm.sim.core import SimEvent, Simulation
from duststorm.sim.rules import RuleModule

PERIODIC_EVENT_TYPE = "periodic_tick"

PeriodicCallback = Callable[[Simulation, int], None]


class PeriodicScheduler(RuleModule):
    """Fires named callbacks every N ticks using self-rescheduling SimEvents.

    Only the next firing of each task is ever pending, so a saved simulation
    carries its schedule and resumes it after load without duplicating chains.
    """

    name = "periodic_scheduler"

    def __init__(self) -> None:
        self._sim: Simulation | None = None
        self._intervals: dict[str, int] = {}
        self._start_ticks: dict[str, int] = {}
        self._order: list[str] = []
        self._callbacks: dict[str, PeriodicCallback] = {}

    def register_task(self, *, task_name: str, interval_ticks: int, start_tick: int = 0) -> None:
        if not task_name:
            raise ValueError("task_name must be a non-empty string")
        if not isinstance(interval_ticks, int) or interval_ticks <= 0:
            raise ValueError("interval_ticks must be a positive integer")
        if not isinstance(start_tick, int) or start_tick < 0:
            raise ValueError("start_tick must be a non-negative integer")

        known_interval = self._intervals.get(task_name)
        if known_interval is None:
            self._intervals[task_name] = interval_ticks
            self._start_ticks[task_name] = start_tick
            self._order.append(task_name)
        elif known_interval != interval_ticks:
            raise ValueError(
                f"periodic task {task_name!r} already registered with interval "
                f"{known_interval}; got {interval_ticks}"
            )

        if self._sim is not None:
            self._ensure_scheduled(self._sim, task_name)

    def set_task_callback(self, task_name: str, callback: PeriodicCallback) -> None:
        if task_name not in self._intervals:
            raise ValueError(f"cannot set callback for unknown periodic task: {task_name}")
        self._callbacks[task_name] = callback

    def task_interval(self, task_name: str) -> int | None:
        return self._intervals.get(task_name)

    def on_simulation_start(self, sim: Simulation) -> None:
        self._sim = sim

        # A loaded save already holds the next firing of each task.
        for event in sim.pending_events():
            if event.event_type != PERIODIC_EVENT_TYPE:
                continue
            task_name, interval_ticks = self._event_task(event)
            known_interval = self._intervals.get(task_name)
            if known_interval is None:
                self._intervals[task_name] = interval_ticks
                self._start_ticks[task_name] = event.tick
                self._order.append(task_name)
            elif known_interval != interval_ticks:
                raise ValueError(
                    f"periodic task {task_name!r} has conflicting intervals: {known_interval} vs {interval_ticks}"
                )

        for task_name in self._order:
            self._ensure_scheduled(sim, task_name)

    def on_event_executed(self, sim: Simulation, event: SimEvent) -> None:
        if event.event_type != PERIODIC_EVENT_TYPE:
            return
        task_name, interval_ticks = self._event_task(event)
        callback = self._callbacks.get(task_name)
        if callback is not None:
            callback(sim, event.tick)
        sim.schedule_event_at(
            tick=event.tick + interval_ticks,
            event_type=PERIODIC_EVENT_TYPE,
            params={"task": task_name, "interval": interval_ticks},
        )

    def _ensure_scheduled(self, sim: Simulation, task_name: str) -> None:
        for event in sim.pending_events():
            if event.event_type == PERIODIC_EVENT_TYPE and self._event_task(event)[0] == task_name:
                return
        # Never schedule into the past; the first firing is the next aligned tick.
        start_tick = self._start_ticks[task_name]
        interval_ticks = self._intervals[task_name]
        if start_tick < sim.state.tick:
            elapsed = sim.state.tick - start_tick
            start_tick += -(-elapsed // interval_ticks) * interval_ticks
        sim.schedule_event_at(
            tick=start_tick,
            event_type=PERIODIC_EVENT_TYPE,
            params={"task": task_name, "interval": interval_ticks},
        )

    @staticmethod
    def _event_task(event: SimEvent) -> tuple[str, int]:
        task_name = str(event.params["task"])
        interval_ticks = int(event.params["interval"])
        if interval_ticks <= 0:
            raise ValueError("periodic_tick interval must be positive")
        return task_name, interval_ticks
