import pytest

from duststorm.sim.panel_queues import PanelHeap, ScoredPanel, SortedPanelStack
from duststorm.sim.scoring import NoiseParams, noise_function_linear, score_panels


def test_linear_noise_is_coordinate_sum() -> None:
    assert noise_function_linear(2.0, 3.5) == 5.5
    assert noise_function_linear(-1.0, 1.0) == 0.0


def test_score_panels_min_max_normalizes_into_unit_interval() -> None:
    scored = score_panels(
        [("p-a", 0.0, 0.0), ("p-b", 2.0, 2.0), ("p-c", 4.0, 4.0)],
        NoiseParams(type="linear"),
    )

    assert [(entry.panel_id, entry.score) for entry in scored] == [("p-a", 0.0), ("p-b", 0.5), ("p-c", 1.0)]


def test_score_panels_skips_normalization_when_range_is_zero() -> None:
    scored = score_panels([("p-a", 1.0, 2.0), ("p-b", 2.0, 1.0)], NoiseParams())

    assert [entry.score for entry in scored] == [3.0, 3.0]


def test_score_panels_empty_input() -> None:
    assert score_panels([], NoiseParams()) == []


def test_noise_params_rejects_unknown_type() -> None:
    with pytest.raises(ValueError, match="unsupported noise type"):
        NoiseParams(type="perlin")


def test_sorted_stack_pops_lowest_score_first() -> None:
    stack = SortedPanelStack(
        [
            ScoredPanel(panel_id="mid", score=0.5),
            ScoredPanel(panel_id="low", score=0.1),
            ScoredPanel(panel_id="high", score=0.9),
        ]
    )

    assert stack.panel_ids() == ["high", "mid", "low"]
    assert stack.peek() == ScoredPanel(panel_id="low", score=0.1)
    assert [stack.pop().panel_id for _ in range(3)] == ["low", "mid", "high"]
    assert not stack
    assert stack.peek() is None
    with pytest.raises(IndexError):
        stack.pop()


def test_sorted_stack_payload_round_trip_keeps_order() -> None:
    stack = SortedPanelStack([ScoredPanel("a", 0.2), ScoredPanel("b", 0.7), ScoredPanel("c", 0.7)])
    stack.pop()

    restored = SortedPanelStack.from_payload(stack.to_payload())

    assert restored.panel_ids() == stack.panel_ids()
    assert len(restored) == 2


def test_sorted_stack_from_payload_rejects_bad_rows() -> None:
    with pytest.raises(ValueError, match="score must be numeric"):
        SortedPanelStack.from_payload([{"panel_id": "a", "score": "high"}])


def test_panel_heap_pops_in_ascending_score_order() -> None:
    heap = PanelHeap()
    for panel_id, score in (("c", 0.8), ("a", 0.1), ("b", 0.4)):
        heap.push(ScoredPanel(panel_id=panel_id, score=score))

    assert len(heap) == 3
    assert [heap.pop().panel_id for _ in range(3)] == ["a", "b", "c"]
    with pytest.raises(IndexError):
        heap.pop()


def test_panel_heap_payload_round_trip() -> None:
    heap = PanelHeap()
    heap.push(ScoredPanel("x", 0.3))
    heap.push(ScoredPanel("y", 0.2))

    restored = PanelHeap.from_payload(heap.to_payload())

    assert restored.pop() == ScoredPanel("y", 0.2)
    assert restored.pop() == ScoredPanel("x", 0.3)
