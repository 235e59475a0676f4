import math
import random

import pytest

from duststorm.sim.sampling import (
    box_muller_transform,
    derive_stream_seed,
    sample_binomial_approx,
    sample_normal,
    sample_poisson,
    uniform_open,
)


def test_derived_stream_seed_is_stable_and_name_dependent() -> None:
    assert derive_stream_seed(master_seed=12345, stream_name="dust_storms") == derive_stream_seed(
        master_seed=12345, stream_name="dust_storms"
    )
    assert derive_stream_seed(master_seed=12345, stream_name="dust_storms") != derive_stream_seed(
        master_seed=12345, stream_name="rng_sim"
    )


def test_uniform_open_never_returns_zero() -> None:
    class _ZeroRandom(random.Random):
        def random(self) -> float:
            return 0.0

    assert uniform_open(_ZeroRandom()) == 1.0


def test_box_muller_pair_and_single_share_first_value() -> None:
    z0 = box_muller_transform(random.Random(3))
    pair = box_muller_transform(random.Random(3), return_pair=True)

    assert isinstance(pair, tuple)
    assert pair[0] == z0


def test_sample_normal_with_zero_variance_returns_mean() -> None:
    assert sample_normal(random.Random(1), 4.25, 0.0) == 4.25


def test_sample_normal_rejects_negative_variance() -> None:
    with pytest.raises(ValueError, match="variance"):
        sample_normal(random.Random(1), 0.0, -1.0)


def test_sample_poisson_zero_mean_is_zero() -> None:
    rng = random.Random(9)

    assert all(sample_poisson(rng, 0.0) == 0 for _ in range(50))


def test_sample_poisson_mean_is_close_to_lambda() -> None:
    rng = random.Random(42)
    draws = [sample_poisson(rng, 2.0) for _ in range(4000)]

    assert all(draw >= 0 for draw in draws)
    assert math.isclose(sum(draws) / len(draws), 2.0, abs_tol=0.15)


def test_sample_poisson_rejects_negative_lambda() -> None:
    with pytest.raises(ValueError, match="lambda"):
        sample_poisson(random.Random(1), -0.5)


@pytest.mark.parametrize("k,p", [(3, 0.001), (10, 0.3), (200, 0.5), (1000, 0.9), (5000, 0.002)])
def test_binomial_approx_stays_within_zero_and_k(k: int, p: float) -> None:
    rng = random.Random(k)

    for _ in range(300):
        draw = sample_binomial_approx(rng, k, p)
        assert isinstance(draw, int)
        assert 0 <= draw <= k


def test_binomial_approx_degenerate_probabilities() -> None:
    rng = random.Random(5)

    assert all(sample_binomial_approx(rng, 40, 0.0) == 0 for _ in range(20))
    assert all(sample_binomial_approx(rng, 40, 1.0) == 40 for _ in range(20))
    assert sample_binomial_approx(rng, 0, 0.5) == 0


def test_binomial_approx_normal_branch_mean_is_close_to_kp() -> None:
    rng = random.Random(77)
    draws = [sample_binomial_approx(rng, 400, 0.25) for _ in range(2000)]

    assert math.isclose(sum(draws) / len(draws), 100.0, abs_tol=1.5)


def test_binomial_approx_is_deterministic_for_seeded_stream() -> None:
    rng_a = random.Random(derive_stream_seed(master_seed=8, stream_name="dust_storms"))
    rng_b = random.Random(derive_stream_seed(master_seed=8, stream_name="dust_storms"))

    assert [sample_binomial_approx(rng_a, 500, 0.01) for _ in range(20)] == [
        sample_binomial_approx(rng_b, 500, 0.01) for _ in range(20)
    ]
