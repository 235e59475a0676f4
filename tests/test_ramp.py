import pytest

from duststorm.sim.ramp import smootherstep, storm_multiplier


def test_smootherstep_clamps_outside_unit_interval() -> None:
    assert smootherstep(-3.0) == 0.0
    assert smootherstep(0.0) == 0.0
    assert smootherstep(1.0) == 1.0
    assert smootherstep(7.5) == 1.0


def test_smootherstep_is_symmetric_around_midpoint() -> None:
    assert smootherstep(0.5) == pytest.approx(0.5)
    assert smootherstep(0.2) + smootherstep(0.8) == pytest.approx(1.0)


def test_smootherstep_is_monotonic_non_decreasing() -> None:
    values = [smootherstep(step / 100) for step in range(101)]

    assert all(later >= earlier for earlier, later in zip(values, values[1:]))


def test_smootherstep_has_flat_ends() -> None:
    epsilon = 1e-3

    assert smootherstep(epsilon) / epsilon < 1e-4
    assert (1.0 - smootherstep(1.0 - epsilon)) / epsilon < 1e-4


def test_storm_multiplier_bounds() -> None:
    assert storm_multiplier(0, 60, 0.5) == 1.0
    assert storm_multiplier(60, 60, 0.5) == pytest.approx(0.5)
    assert storm_multiplier(30, 60, 0.5) == pytest.approx(0.75)
    assert storm_multiplier(600, 60, 0.9) == pytest.approx(0.1)


def test_storm_multiplier_rejects_non_positive_ramp() -> None:
    with pytest.raises(ValueError, match="ramp_duration"):
        storm_multiplier(5, 0, 0.5)
