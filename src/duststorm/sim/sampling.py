from __future__ import annotations

import hashlib
import math
import random

POISSON_SWITCH_MEAN = 5.0


def derive_stream_seed(master_seed: int, stream_name: str) -> int:
    """Derive a deterministic child RNG seed from (master_seed, stream_name)."""
    digest = hashlib.sha256(f"{master_seed}:{stream_name}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False)


def uniform_open(rng: random.Random) -> float:
    """Uniform draw on (0, 1]; never returns 0 so ``log`` stays defined."""
    return 1.0 - rng.random()


def box_muller_transform(rng: random.Random, return_pair: bool = False) -> float | tuple[float, float]:
    """Convert two uniform draws into standard normal variable(s)."""
    u1 = uniform_open(rng)
    u2 = rng.random()
    r = math.sqrt(-2.0 * math.log(u1))
    theta = 2.0 * math.pi * u2
    z0 = r * math.cos(theta)
    if return_pair:
        return (z0, r * math.sin(theta))
    return z0


def sample_normal(rng: random.Random, mean: float, variance: float) -> float:
    """Sample from N(mean, variance)."""
    if variance < 0:
        raise ValueError("variance must be >= 0")
    z0 = box_muller_transform(rng)
    return mean + math.sqrt(variance) * float(z0)


def sample_poisson(rng: random.Random, lam: float) -> int:
    """Sample from Poisson(lam) using Knuth's multiplication method.

    Cost is O(lam) uniform draws, so callers keep ``lam`` small.
    """
    if lam < 0:
        raise ValueError("lambda must be >= 0")
    threshold = math.exp(-lam)
    k = 0
    p = 1.0
    while True:
        k += 1
        p *= uniform_open(rng)
        if p <= threshold:
            return k - 1


def sample_binomial_approx(rng: random.Random, k: int, p: float) -> int:
    """Approximate a draw from Binomial(k, p), always clamped to [0, k].

    Small ``k*p`` uses the Poisson limit; otherwise the normal approximation
    N(k*p, k*p*(1-p)) is rounded to the nearest integer.
    """
    if k <= 0 or p <= 0.0:
        return 0
    if p >= 1.0:
        return k
    kp = k * p
    if kp < POISSON_SWITCH_MEAN:
        sample = sample_poisson(rng, kp)
    else:
        sample = math.floor(sample_normal(rng, kp, kp * (1.0 - p)) + 0.5)
    if sample < 0:
        return 0
    if sample > k:
        return k
    return int(sample)
