from __future__ import annotations

import pytest

from ble_locator.history import ResultHistory
from ble_locator.models import LocationResult


def _history(count: int = 5) -> ResultHistory:
    history = ResultHistory()
    for i in range(count):
        history.push(LocationResult(368.0 + i, 339.0 + i, 94.0, 0.85, 20.0 + i, "method", 3))
    return history


def test_push_last_and_all() -> None:
    history = _history()
    assert len(history) == 5
    assert not history.is_empty
    assert history.last().x == 372.0
    assert [r.x for r in history.all()] == [368.0, 369.0, 370.0, 371.0, 372.0]
    assert [r.x for r in history] == [r.x for r in history.all()]


def test_average() -> None:
    avg = _history().average()
    assert avg is not None
    assert avg.x == pytest.approx(370.0)
    assert avg.y == pytest.approx(341.0)
    assert avg.z == pytest.approx(94.0)
    assert avg.error == pytest.approx(22.0)
    assert avg.confidence == pytest.approx(0.85)
    assert avg.method == "average"
    assert avg.beacon_count == 0


def test_average_last() -> None:
    recent = _history().average_last(3)
    assert recent is not None
    assert recent.x == pytest.approx(371.0)
    assert recent.method == "average_last_3"
    assert recent.beacon_count == 0


@pytest.mark.parametrize("n", [5, 6, 100])
def test_average_last_with_large_window_equals_average(n: int) -> None:
    history = _history()
    full = history.average()
    windowed = history.average_last(n)
    assert windowed is not None and full is not None
    assert (windowed.x, windowed.y, windowed.z) == pytest.approx((full.x, full.y, full.z))
    assert windowed.confidence == pytest.approx(full.confidence)
    assert windowed.error == pytest.approx(full.error)


def test_empty_history() -> None:
    history = ResultHistory()
    assert history.is_empty
    assert history.last() is None
    assert history.average() is None
    assert history.average_last(3) is None
    assert _history().average_last(0) is None


def test_max_size_keeps_newest() -> None:
    history = ResultHistory(max_size=2)
    for i in range(4):
        history.push(LocationResult(float(i), 0.0, 0.0, 0.5, 1.0, "m", 3))
    assert [r.x for r in history.all()] == [2.0, 3.0]


def test_clear_and_dataframe() -> None:
    history = _history(3)
    df = history.to_dataframe()
    assert len(df) == 3
    assert list(df["x"]) == [368.0, 369.0, 370.0]

    history.clear()
    assert len(history) == 0
    assert history.to_dataframe().empty
