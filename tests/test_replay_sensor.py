"""Tests for the CSV replay sensor."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest
from dateutil import tz

from pasos_tool.model import StepEvent
from pasos_tool.sensors.replay import ReplaySensor, _find_col

UTC = tz.UTC


def _write_csv(path: Path, data: dict[str, list[object]]) -> None:
    pd.DataFrame(data).to_csv(path, index=False)


def _frame(rows: list[tuple[str, int]]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "timestamp": [pd.Timestamp(ts, tz="UTC") for ts, _ in rows],
            "steps": [steps for _, steps in rows],
        }
    )


def test_find_col_matches_spanish_and_english() -> None:
    cols = ["Fecha", "Pasos acumulados"]
    assert _find_col(cols, [r"\bpasos\b", r"\bstep"]) == "Pasos acumulados"
    assert _find_col(["timestamp", "step_count"], [r"\bstep"]) == "step_count"
    assert _find_col(cols, [r"\bunknown\b"]) is None


def test_from_csv_sorts_and_localizes(tmp_path: Path) -> None:
    path = tmp_path / "readings.csv"
    _write_csv(
        path,
        {
            " Fecha ": ["2025-12-15 08:00:10", "2025-12-15 08:00:00", "bad"],
            "Pasos": ["12", "10", "14"],
        },
    )
    sensor = ReplaySensor.from_csv(path, UTC)
    readings = sensor.readings
    assert list(readings["steps"]) == [10, 12]
    assert readings["timestamp"].iloc[0] == pd.Timestamp("2025-12-15 08:00", tz="UTC")


def test_from_csv_errors(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        ReplaySensor.from_csv(tmp_path / "missing.csv")

    path = tmp_path / "other.csv"
    _write_csv(path, {"Other": [1]})
    with pytest.raises(ValueError, match="Missing timestamp/steps"):
        ReplaySensor.from_csv(path, UTC)


def test_is_available_depends_on_readings() -> None:
    empty = ReplaySensor(pd.DataFrame())
    full = ReplaySensor(_frame([("2025-12-15 08:00", 3)]))
    assert asyncio.run(empty.is_available()) is False
    assert asyncio.run(full.is_available()) is True


def test_query_step_count_sums_increases_in_window() -> None:
    sensor = ReplaySensor(
        _frame(
            [
                ("2025-12-14 23:59", 100),
                ("2025-12-15 00:10", 130),
                ("2025-12-15 00:20", 5),
                ("2025-12-15 09:00", 25),
                ("2025-12-16 00:01", 40),
            ]
        )
    )
    start = datetime(2025, 12, 15, tzinfo=UTC)
    end = datetime(2025, 12, 15, 23, 59, tzinfo=UTC)
    # 30 + 0 (counter reset) + 20
    assert asyncio.run(sensor.query_step_count(start, end)).steps == 50


def test_replay_emits_in_order_and_tracks_clock() -> None:
    sensor = ReplaySensor(
        _frame([("2025-12-15 08:00:05", 4), ("2025-12-15 08:00:00", 1)])
    )
    assert sensor.clock() == datetime(2025, 12, 15, 8, 0, tzinfo=UTC)
    received: list[StepEvent] = []
    subscription = sensor.subscribe(received.append)

    assert sensor.replay() == 2
    assert [e.steps for e in received] == [0, 3]
    assert sensor.clock() == datetime(2025, 12, 15, 8, 0, 5, tzinfo=UTC)

    subscription.unsubscribe()
    subscription.unsubscribe()
    sensor.replay()
    assert len(received) == 2
    assert sensor.subscriber_count == 0


def test_replay_counts_start_from_first_reading() -> None:
    sensor = ReplaySensor(
        _frame(
            [
                ("2025-12-15 08:00:00", 1000),
                ("2025-12-15 08:00:05", 1004),
                ("2025-12-15 08:00:10", 1009),
                ("2025-12-15 08:00:15", 3),
                ("2025-12-15 08:00:20", 7),
            ]
        )
    )
    received: list[StepEvent] = []
    sensor.subscribe(received.append)

    sensor.replay()

    # After the counter reset the raw values pass through.
    assert [e.steps for e in received] == [0, 4, 9, 3, 7]
