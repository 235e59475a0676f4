from __future__ import annotations

import heapq
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ScoredPanel:
    panel_id: str
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {"panel_id": self.panel_id, "score": self.score}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScoredPanel":
        if not isinstance(data, dict):
            raise ValueError("scored panel entry must be an object")
        panel_id = data.get("panel_id")
        if not isinstance(panel_id, str) or not panel_id:
            raise ValueError("scored panel panel_id must be a non-empty string")
        score = data.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ValueError("scored panel score must be numeric")
        return cls(panel_id=panel_id, score=float(score))


class SortedPanelStack:
    """Panels sorted once by descending score; O(1) pops from the tail.

    The tail always holds the lowest remaining score. Entries are only ever
    removed, never inserted, after construction.
    """

    def __init__(self, panels: Iterable[ScoredPanel] = ()) -> None:
        self._items: list[ScoredPanel] = sorted(panels, key=lambda entry: (entry.score, entry.panel_id), reverse=True)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def peek(self) -> ScoredPanel | None:
        if not self._items:
            return None
        return self._items[-1]

    def pop(self) -> ScoredPanel:
        if not self._items:
            raise IndexError("pop from empty panel stack")
        return self._items.pop()

    def panel_ids(self) -> list[str]:
        return [entry.panel_id for entry in self._items]

    def to_payload(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self._items]

    @classmethod
    def from_payload(cls, payload: Any) -> "SortedPanelStack":
        if not isinstance(payload, list):
            raise ValueError("solar_panels must be a list")
        stack = cls()
        # Saved order is already canonical; keep it rather than re-sorting.
        stack._items = [ScoredPanel.from_dict(row) for row in payload]
        return stack


class PanelHeap:
    """Min-heap of scored panels with O(log n) push/pop.

    Reserved for panels that become eligible after a storm starts.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[float, str]] = []

    def __len__(self) -> int:
        return len(self._heap)

    def push(self, panel: ScoredPanel) -> None:
        heapq.heappush(self._heap, (panel.score, panel.panel_id))

    def pop(self) -> ScoredPanel:
        if not self._heap:
            raise IndexError("pop from empty panel heap")
        score, panel_id = heapq.heappop(self._heap)
        return ScoredPanel(panel_id=panel_id, score=score)

    def to_payload(self) -> list[dict[str, Any]]:
        return [{"panel_id": panel_id, "score": score} for score, panel_id in self._heap]

    @classmethod
    def from_payload(cls, payload: Any) -> "PanelHeap":
        if not isinstance(payload, list):
            raise ValueError("additional_solar_panels must be a list")
        heap = cls()
        for row in payload:
            heap.push(ScoredPanel.from_dict(row))
        return heap
