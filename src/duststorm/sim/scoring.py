from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from duststorm.sim.panel_queues import ScoredPanel

NOISE_TYPES = {"linear"}


@dataclass(frozen=True)
class NoiseParams:
    """Selects how panels are scored at storm creation."""

    type: str = "linear"

    def __post_init__(self) -> None:
        if self.type not in NOISE_TYPES:
            raise ValueError(f"unsupported noise type: {self.type}")

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "NoiseParams":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError("noise_params must be an object")
        return cls(type=str(data.get("type", "linear")))


def noise_function_linear(x: float, y: float) -> float:
    return x + y


def score_panels(
    panels: Iterable[tuple[str, float, float]],
    noise_params: NoiseParams,
) -> list[ScoredPanel]:
    """Score ``(panel_id, x, y)`` rows and min-max normalize into [0, 1].

    Normalization is skipped when every panel has the same raw score.
    """
    if noise_params.type != "linear":
        raise ValueError(f"unsupported noise type: {noise_params.type}")

    raw = [(panel_id, noise_function_linear(x, y)) for panel_id, x, y in panels]
    if not raw:
        return []
    min_score = min(score for _, score in raw)
    max_score = max(score for _, score in raw)
    score_range = max_score - min_score
    if score_range > 0:
        return [ScoredPanel(panel_id=panel_id, score=(score - min_score) / score_range) for panel_id, score in raw]
    return [ScoredPanel(panel_id=panel_id, score=score) for panel_id, score in raw]
