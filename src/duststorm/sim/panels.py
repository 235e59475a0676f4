from __future__ import annotations

from duststorm.content.prototypes import clean_name_of, dusty_name_of, is_dusty_name
from duststorm.sim.host import PanelHost
from duststorm.sim.world import SOLAR_PANEL_TYPE, PanelState


def replace_panel(
    host: PanelHost,
    panel_id: str,
    new_name: str,
    health_multiplier: float = 1.0,
) -> PanelState | None:
    """Destroy ``panel_id`` and build ``new_name`` in its place.

    The old panel is removed without a destroy notification. Health carries
    over scaled by ``health_multiplier``. When the new panel cannot be placed
    the failure is reported and the old panel stays gone.
    """
    panel = host.get_panel(panel_id)
    if panel is None:
        return None
    surface_id = panel.surface_id
    position = panel.position
    force = panel.force
    quality = panel.quality
    health = panel.health

    host.destroy_panel(panel_id, raise_destroy=False)
    new_panel = host.create_panel(
        surface_id=surface_id,
        name=new_name,
        position=position,
        force=force,
        quality=quality,
    )
    if new_panel is None:
        host.report(
            f"failed to make {new_name} at ({position[0]}, {position[1]})",
            surface_id=surface_id,
            name=new_name,
            position=[position[0], position[1]],
        )
        return None
    host.set_panel_health(new_panel.panel_id, health * health_multiplier)
    return new_panel


def make_panel_dusty(host: PanelHost, panel_id: str, health_multiplier: float = 1.0) -> PanelState | None:
    panel = host.get_panel(panel_id)
    if panel is None or panel.panel_type != SOLAR_PANEL_TYPE:
        return None
    if is_dusty_name(panel.name):
        return None
    return replace_panel(host, panel_id, dusty_name_of(panel.name), health_multiplier)


def make_panel_clean(host: PanelHost, panel_id: str, health_multiplier: float = 1.0) -> PanelState | None:
    panel = host.get_panel(panel_id)
    if panel is None or panel.panel_type != SOLAR_PANEL_TYPE:
        return None
    if not is_dusty_name(panel.name):
        return None
    return replace_panel(host, panel_id, clean_name_of(panel.name), health_multiplier)


def check_clean_all_panels(host: PanelHost, surface_id: str) -> list[str]:
    """Clean every dusty panel on the surface that is back at full health."""
    cleaned: list[str] = []
    for panel in host.find_panels(surface_id):
        if panel.health_ratio() == 1:
            new_panel = make_panel_clean(host, panel.panel_id)
            if new_panel is not None:
                cleaned.append(new_panel.panel_id)
    return cleaned


def force_clean_surface(host: PanelHost, surface_id: str) -> list[str]:
    cleaned: list[str] = []
    for panel in host.find_panels(surface_id):
        new_panel = make_panel_clean(host, panel.panel_id)
        if new_panel is not None:
            cleaned.append(new_panel.panel_id)
    return cleaned


def force_dusty_surface(host: PanelHost, surface_id: str, health_multiplier: float = 1.0) -> list[str]:
    dusted: list[str] = []
    for panel in host.find_panels(surface_id):
        new_panel = make_panel_dusty(host, panel.panel_id, health_multiplier)
        if new_panel is not None:
            dusted.append(new_panel.panel_id)
    return dusted


def repair_surface(host: PanelHost, surface_id: str, amount: float) -> list[str]:
    """Repair every damaged managed panel on the surface by ``amount`` health.

    Dusty panels repair slower; a repaired dusty panel stays dusty until the
    next sweep sees it at full health.
    """
    repaired: list[str] = []
    for panel in host.find_panels(surface_id):
        if panel.health_ratio() < 1:
            host.repair_panel(panel.panel_id, amount)
            repaired.append(panel.panel_id)
    return repaired
