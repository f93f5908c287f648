"""Sensor que reproduce lecturas acumuladas grabadas en CSV."""

from __future__ import annotations

import re
from datetime import datetime, tzinfo
from pathlib import Path

import pandas as pd
from dateutil import tz

from pasos_tool.model import StepCount, StepEvent
from pasos_tool.sensors.base import StepSensor

READING_COLUMNS = ["timestamp", "steps"]


class ReplaySensor(StepSensor):
    """Step sensor backed by recorded cumulative readings.

    Readings are a DataFrame with a tz-aware ``timestamp`` column and an
    integer ``steps`` column holding the sensor's cumulative counter.
    """

    def __init__(self, readings: pd.DataFrame) -> None:
        super().__init__()
        self._readings = _normalize_readings(readings)
        self._position: datetime | None = None

    @classmethod
    def from_csv(cls, path: Path, zone: tzinfo | None = None) -> ReplaySensor:
        """Load readings from a CSV file.

        Args:
            path: CSV with a timestamp column and a cumulative steps column.
            zone: Zone applied to naive timestamps (default: local zone).

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the timestamp or steps column cannot be found.
        """
        if not path.exists():
            raise FileNotFoundError(str(path))
        df = pd.read_csv(path)
        df = df.rename(columns={c: str(c).strip() for c in df.columns})
        cols = list(df.columns)
        ts_col = _find_col(cols, [r"^timestamp$", r"\bfecha\b", r"\bdate", r"\btime"])
        steps_col = _find_col(cols, [r"\bpasos\b", r"\bstep"])
        if ts_col is None or steps_col is None:
            raise ValueError(f"Missing timestamp/steps columns in {path}")
        timestamps = pd.to_datetime(df[ts_col], errors="coerce")
        if timestamps.dt.tz is None:
            timestamps = timestamps.dt.tz_localize(zone or tz.tzlocal())
        frame = pd.DataFrame(
            {
                "timestamp": timestamps,
                "steps": pd.to_numeric(df[steps_col], errors="coerce"),
            }
        )
        return cls(frame)

    @property
    def readings(self) -> pd.DataFrame:
        return self._readings.copy()

    def clock(self) -> datetime:
        """Replay time: the last emitted reading, or the first one before replay."""
        if self._position is not None:
            return self._position
        if not self._readings.empty:
            return self._readings["timestamp"].iloc[0].to_pydatetime()
        return datetime.now(tz.tzlocal())

    async def is_available(self) -> bool:
        return not self._readings.empty

    async def query_step_count(self, start: datetime, end: datetime) -> StepCount:
        """Sum positive counter increases recorded within (start, end]."""
        if self._readings.empty:
            return StepCount(steps=0)
        increases = self._readings["steps"].diff().clip(lower=0).fillna(0)
        ts = self._readings["timestamp"]
        mask = (ts > pd.Timestamp(start)) & (ts <= pd.Timestamp(end))
        return StepCount(steps=int(increases[mask].sum()))

    def replay(self) -> int:
        """Emit every reading to subscribers in timestamp order.

        Emitted counts are relative to the first reading, like a live
        step watcher that reports steps since it was subscribed. A file
        whose counter starts at 1000 therefore starts the stream at 0.
        After a counter reset the raw values are emitted unchanged.

        Returns:
            Number of readings emitted.
        """
        if self._readings.empty:
            return 0
        baseline = previous = int(self._readings["steps"].iloc[0])
        count = 0
        for row in self._readings.itertuples(index=False):
            self._position = row.timestamp.to_pydatetime()
            raw = int(row.steps)
            if raw < previous:
                baseline = 0
            previous = raw
            steps = raw - baseline
            self.emit(StepEvent(steps=steps, timestamp=self._position))
            count += 1
        return count


def _find_col(columns: list[str], patterns: list[str]) -> str | None:
    for pat in patterns:
        rx = re.compile(pat, re.IGNORECASE)
        for c in columns:
            if rx.search(c):
                return c
    return None


def _normalize_readings(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=READING_COLUMNS)
    out = df.loc[:, READING_COLUMNS].dropna()
    out = out[out["steps"] >= 0]
    if out.empty:
        return pd.DataFrame(columns=READING_COLUMNS)
    out = out.astype({"steps": "int64"})
    return out.sort_values("timestamp", kind="stable").reset_index(drop=True)
