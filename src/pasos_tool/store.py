"""Store diario: snapshot actual, historial de 7 dias y observadores."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Callable, Mapping
from datetime import date

import pandas as pd
import structlog

from pasos_tool.model import (
    METRIC_FIELDS,
    HealthSnapshot,
    UnitSystem,
    WeeklyEntry,
    normalize_fields,
)
from pasos_tool.settings import UNITS_KEY, format_units
from pasos_tool.storage import SQLiteStore

logger = structlog.get_logger(__name__)

WEEKLY_CAPACITY = 7

SnapshotListener = Callable[[HealthSnapshot], None]
SnapshotUpdate = Mapping[str, object] | Callable[[HealthSnapshot], HealthSnapshot]

_PERSIST_ERRORS = (sqlite3.Error, OSError)


class DailyAggregateStore:
    """Holds today's metrics and a per-metric weekly history.

    Every change replaces the snapshot under a lock, so readers only ever
    see complete snapshots. Listeners are notified after the lock is
    released. When a repository is given, changes are persisted on a
    best-effort basis: failures are logged and the in-memory state stays
    authoritative.
    """

    def __init__(
        self,
        repository: SQLiteStore | None = None,
        *,
        day: date | None = None,
        unit_system: UnitSystem = UnitSystem.METRIC,
    ) -> None:
        self._repository = repository
        self._lock = threading.RLock()
        self._snapshot = HealthSnapshot.zero()
        self._day = day or date.today()
        self._unit_system = unit_system
        self._weekly: dict[str, list[WeeklyEntry]] = {
            key: [] for key in METRIC_FIELDS.values()
        }
        self._listeners: list[SnapshotListener] = []

    @property
    def snapshot(self) -> HealthSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def day(self) -> date:
        with self._lock:
            return self._day

    @property
    def unit_system(self) -> UnitSystem:
        with self._lock:
            return self._unit_system

    @property
    def weekly(self) -> dict[str, list[WeeklyEntry]]:
        """Copy of the weekly series, keyed by persisted metric name."""
        with self._lock:
            return {key: list(entries) for key, entries in self._weekly.items()}

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: SnapshotListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def update(self, data: SnapshotUpdate) -> HealthSnapshot:
        """Merge a partial mapping, or apply a transform, to the snapshot.

        Args:
            data: Mapping of metric fields (attribute or persisted names) or
                a function returning the new snapshot from the current one.

        Returns:
            The new snapshot.

        Raises:
            KeyError: If the mapping contains an unknown metric.
            TypeError: If the transform does not return a HealthSnapshot.
        """
        with self._lock:
            if callable(data):
                updated = data(self._snapshot)
                if not isinstance(updated, HealthSnapshot):
                    raise TypeError("Snapshot transform must return HealthSnapshot")
            else:
                updated = self._snapshot.replace(**normalize_fields(data))
            self._snapshot = updated
            day = self._day
        self._persist_snapshot(day, updated)
        self._notify(updated)
        return updated

    update_daily_data = update

    def reset(self) -> HealthSnapshot:
        """Zero every metric of today's snapshot."""
        snapshot = HealthSnapshot.zero()
        with self._lock:
            self._snapshot = snapshot
            day = self._day
        self._persist_snapshot(day, snapshot)
        self._notify(snapshot)
        return snapshot

    reset_daily_data = reset

    def add_weekly_data(self, day: date, snapshot: HealthSnapshot) -> None:
        """Upsert one day in every metric's series, keeping the last 7 days."""
        with self._lock:
            for key, value in snapshot.as_dict().items():
                series = self._weekly.setdefault(key, [])
                entry = WeeklyEntry(day=day, value=float(value))
                for idx, existing in enumerate(series):
                    if existing.day == day:
                        series[idx] = entry
                        break
                else:
                    series.append(entry)
                del series[:-WEEKLY_CAPACITY]
            weekly = {key: list(entries) for key, entries in self._weekly.items()}
        self._persist_weekly(weekly)

    def rollover(self, new_day: date | None = None) -> HealthSnapshot:
        """Archive today's snapshot into the weekly series and start a new day.

        A ``new_day`` that is not later than the current day is a no-op,
        so repeated triggers for the same midnight close the day once.

        Args:
            new_day: Day that starts now (default: today's date).

        Returns:
            The archived snapshot, or the current one when nothing rolled over.
        """
        snapshot = HealthSnapshot.zero()
        day = new_day or date.today()
        with self._lock:
            if day <= self._day:
                logger.debug(
                    "rollover_skipped",
                    day=self._day.isoformat(),
                    requested=day.isoformat(),
                )
                return self._snapshot
            archived = self._snapshot
            closing_day = self._day
            self.add_weekly_data(closing_day, archived)
            self._day = day
            self._snapshot = snapshot
        logger.info(
            "rollover",
            closed_day=closing_day.isoformat(),
            steps=archived.steps,
        )
        self._persist_snapshot(day, snapshot)
        self._notify(snapshot)
        return archived

    def set_unit_system(self, system: UnitSystem) -> None:
        with self._lock:
            self._unit_system = system
        if self._repository is not None:
            try:
                self._repository.set_value(UNITS_KEY, format_units(system))
            except _PERSIST_ERRORS as exc:
                logger.error("unit_system_persist_failed", error=repr(exc))

    def hydrate(self, today: date | None = None) -> None:
        """Load persisted state.

        A snapshot persisted on an earlier day is archived into the weekly
        series and today's snapshot starts from zero.
        """
        if self._repository is None:
            return
        today = today or date.today()
        weekly = self._repository.load_weekly()
        stored = self._repository.load_snapshot()
        units = UnitSystem.parse(self._repository.get_value(UNITS_KEY))
        with self._lock:
            for key, entries in weekly.items():
                self._weekly[key] = entries[-WEEKLY_CAPACITY:]
            if units is not None:
                self._unit_system = units
            self._day = today
            self._snapshot = HealthSnapshot.zero()
        if stored is None:
            return
        stored_day, snapshot = stored
        if stored_day < today:
            self.add_weekly_data(stored_day, snapshot)
            logger.info("hydrate_archived_stale_day", day=stored_day.isoformat())
            return
        with self._lock:
            self._snapshot = snapshot
        self._notify(snapshot)

    def flush(self) -> None:
        """Write the snapshot and the weekly series to the repository."""
        with self._lock:
            day = self._day
            snapshot = self._snapshot
            weekly = {key: list(entries) for key, entries in self._weekly.items()}
        self._persist_snapshot(day, snapshot)
        self._persist_weekly(weekly)

    def weekly_frame(self) -> pd.DataFrame:
        """Weekly series as a DataFrame: one row per day, one column per metric."""
        columns = ["date", *METRIC_FIELDS.values()]
        records: dict[date, dict[str, object]] = {}
        for key, entries in self.weekly.items():
            for entry in entries:
                records.setdefault(entry.day, {"date": entry.day})[key] = entry.value
        if not records:
            return pd.DataFrame(columns=columns)
        out = pd.DataFrame(list(records.values()))
        out = out.reindex(columns=columns)
        return out.sort_values("date").reset_index(drop=True)

    def _persist_snapshot(self, day: date, snapshot: HealthSnapshot) -> None:
        if self._repository is None:
            return
        try:
            self._repository.save_snapshot(day, snapshot)
        except _PERSIST_ERRORS as exc:
            logger.error("snapshot_persist_failed", error=repr(exc))

    def _persist_weekly(self, weekly: dict[str, list[WeeklyEntry]]) -> None:
        if self._repository is None:
            return
        try:
            self._repository.save_weekly(weekly)
        except _PERSIST_ERRORS as exc:
            logger.error("weekly_persist_failed", error=repr(exc))

    def _notify(self, snapshot: HealthSnapshot) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("snapshot_listener_failed")
