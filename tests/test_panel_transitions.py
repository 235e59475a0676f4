from duststorm.content.prototypes import PanelPrototype, build_prototype_registry
from duststorm.sim.core import Simulation
from duststorm.sim.host import HOST_REPORT_EVENT_TYPE, WorldPanelHost
from duststorm.sim.panels import (
    check_clean_all_panels,
    force_clean_surface,
    force_dusty_surface,
    make_panel_clean,
    make_panel_dusty,
    replace_panel,
)
from duststorm.sim.world import PanelState, SurfaceState, WorldState


def _build_host(*panels: tuple[str, float, float, float]) -> tuple[Simulation, WorldPanelHost]:
    world = WorldState()
    world.add_surface(SurfaceState(surface_id="nauvis"))
    for name, x, y, health in panels:
        world.add_panel(
            PanelState(
                panel_id=world.allocate_panel_id(),
                surface_id="nauvis",
                name=name,
                position_x=x,
                position_y=y,
                health=health,
                max_health=200.0,
                quality="uncommon",
            )
        )
    sim = Simulation(world=world, seed=5)
    registry = build_prototype_registry([PanelPrototype(name="solar-panel", max_health=200.0, production_kw=60.0)])
    return sim, WorldPanelHost(sim, registry)


def test_make_panel_dusty_recreates_with_same_position_force_quality_and_health() -> None:
    sim, host = _build_host(("solar-panel", 3.0, 4.0, 120.0))

    dusty = make_panel_dusty(host, "panel-000001")

    assert dusty is not None
    assert dusty.panel_id == "panel-000002"
    assert dusty.name == "solar-panel-dusty"
    assert dusty.position == (3.0, 4.0)
    assert dusty.quality == "uncommon"
    assert dusty.force == "player"
    assert dusty.health == 120.0
    assert not host.is_valid("panel-000001")


def test_make_panel_dusty_applies_health_multiplier() -> None:
    _, host = _build_host(("solar-panel", 0.0, 0.0, 200.0))

    dusty = make_panel_dusty(host, "panel-000001", health_multiplier=0.5)

    assert dusty.health == 100.0


def test_transitions_are_no_ops_in_the_same_state() -> None:
    sim, host = _build_host(("solar-panel", 0.0, 0.0, 200.0), ("solar-panel-dusty", 1.0, 0.0, 50.0))

    assert make_panel_dusty(host, "panel-000002") is None
    assert make_panel_clean(host, "panel-000001") is None
    assert make_panel_dusty(host, "missing") is None
    assert sorted(sim.state.world.panels) == ["panel-000001", "panel-000002"]


def test_non_managed_panel_types_are_ignored() -> None:
    sim, host = _build_host(("solar-panel", 0.0, 0.0, 200.0))
    sim.state.world.panels["panel-000001"].panel_type = "accumulator"

    assert make_panel_dusty(host, "panel-000001") is None
    assert sim.state.world.panels["panel-000001"].name == "solar-panel"


def test_make_panel_clean_restores_base_variant() -> None:
    _, host = _build_host(("solar-panel-dusty", 2.0, 2.0, 80.0))

    clean = make_panel_clean(host, "panel-000001")

    assert clean.name == "solar-panel"
    assert clean.health == 80.0


def test_replace_panel_failure_is_reported_and_not_retried() -> None:
    sim, host = _build_host(("solar-panel", 6.0, 1.0, 200.0))

    assert replace_panel(host, "panel-000001", "unknown-panel") is None

    assert sim.state.world.panels == {}
    entry = sim.get_event_trace()[-1]
    assert entry["event_type"] == HOST_REPORT_EVENT_TYPE
    assert entry["params"]["message"] == "failed to make unknown-panel at (6.0, 1.0)"


def test_sweep_restores_only_full_health_dusty_panels() -> None:
    sim, host = _build_host(
        ("solar-panel-dusty", 0.0, 0.0, 200.0),
        ("solar-panel-dusty", 1.0, 0.0, 150.0),
        ("solar-panel", 2.0, 0.0, 200.0),
    )

    cleaned = check_clean_all_panels(host, "nauvis")

    assert len(cleaned) == 1
    names = {panel.position: panel.name for panel in host.find_panels("nauvis")}
    assert names == {(0.0, 0.0): "solar-panel", (1.0, 0.0): "solar-panel-dusty", (2.0, 0.0): "solar-panel"}

    assert check_clean_all_panels(host, "nauvis") == []


def test_force_dusty_then_force_clean_surface() -> None:
    _, host = _build_host(("solar-panel", 0.0, 0.0, 200.0), ("solar-panel", 1.0, 0.0, 100.0))

    dusted = force_dusty_surface(host, "nauvis", health_multiplier=0.5)

    assert len(dusted) == 2
    assert sorted(panel.health for panel in host.find_panels("nauvis")) == [50.0, 100.0]
    assert all(panel.name == "solar-panel-dusty" for panel in host.find_panels("nauvis"))

    cleaned = force_clean_surface(host, "nauvis")

    assert len(cleaned) == 2
    assert all(panel.name == "solar-panel" for panel in host.find_panels("nauvis"))
    assert sorted(panel.health for panel in host.find_panels("nauvis")) == [50.0, 100.0]
