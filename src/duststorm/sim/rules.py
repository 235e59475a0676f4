from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from duststorm.sim.core import SimCommand, SimEvent, Simulation


class RuleModule:
    """Base class for behavior plugged into a ``Simulation``.

    Modules are registered by name and every lifecycle hook runs in
    registration order. Subclasses override only the hooks they need.
    """

    name: str

    def on_simulation_start(self, sim: Simulation) -> None:
        """Called once, immediately when the module is registered."""

    def on_tick_start(self, sim: Simulation, tick: int) -> None:
        """Called before commands and events of ``tick`` are applied."""

    def on_tick_end(self, sim: Simulation, tick: int) -> None:
        """Called after every command and event of ``tick`` has run."""

    def on_command(self, sim: Simulation, command: SimCommand, command_index: int) -> bool:
        """Return True when the command was consumed by this module."""
        return False

    def on_event_executed(self, sim: Simulation, event: SimEvent) -> None:
        """Called after each scheduled event fires."""

    def on_state_sync(self, sim: Simulation) -> None:
        """Called before ``rules_state`` is read for a save, hash or inspection.

        Modules that keep live state outside ``rules_state`` write it back here.
        """
