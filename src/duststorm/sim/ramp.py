from __future__ import annotations


def smootherstep(x: float) -> float:
    """Quintic ease curve with zero first and second derivative at 0 and 1."""
    if x <= 0:
        return 0.0
    if x >= 1:
        return 1.0
    return x * x * x * (x * (6 * x - 15) + 10)


def storm_multiplier(delta: float, ramp_duration: float, intensity: float) -> float:
    """Attenuation factor ``delta`` ticks into (or before the end of) a storm ramp."""
    if ramp_duration <= 0:
        raise ValueError("ramp_duration must be > 0")
    return 1.0 - smootherstep(delta / ramp_duration) * intensity
