"""Agregador del flujo de pasos: deltas acotados, tiempo activo y snapshot diario."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time, tzinfo
from enum import Enum

import structlog
from dateutil import tz

from pasos_tool.calculations import active_energy, distance, distance_km, speed
from pasos_tool.errors import SensorUnavailableError
from pasos_tool.model import HealthSnapshot, StepEvent, UserProfile
from pasos_tool.sensors.base import SensorSubscription, StepSensor
from pasos_tool.settings import SettingsStore, load_profile
from pasos_tool.store import DailyAggregateStore

logger = structlog.get_logger(__name__)

# Largest delta accepted from a single sensor tick; the excess is dropped.
MAX_STEP_DELTA = 5

SECONDS_PER_HOUR = 3600.0


class AggregatorPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    IDLE = "idle"
    MOVING = "moving"
    FAILED = "failed"


@dataclass
class AggregatorState:
    """Mutable per-session state of the step stream.

    total_steps and total_active_time only grow within a day; they are
    zeroed by reset_day(). The raw-count history survives day changes
    because the sensor counter is not day-scoped.
    """

    total_steps: int = 0
    total_active_time: float = 0.0
    is_moving: bool = False
    moving_start_time: datetime | None = None
    last_raw_count: int | None = None
    second_last_raw_count: int | None = None
    phase: AggregatorPhase = AggregatorPhase.UNINITIALIZED

    @property
    def active_time_hours(self) -> float:
        return self.total_active_time / SECONDS_PER_HOUR

    def seed(self, steps: int) -> None:
        """Start the session from the day-scoped count reported by the sensor."""
        steps = max(int(steps), 0)
        self.total_steps = steps
        self.last_raw_count = steps
        self.second_last_raw_count = None
        self.phase = AggregatorPhase.IDLE

    def apply(
        self, cumulative_steps: int, now: datetime, max_delta: int = MAX_STEP_DELTA
    ) -> int:
        """Apply one raw cumulative reading.

        Args:
            cumulative_steps: Sensor counter value.
            now: Time the reading was taken.
            max_delta: Clamp for a single reading's delta.

        Returns:
            The clamped delta added to total_steps.
        """
        if self.last_raw_count is None:
            raw_delta = max(0, cumulative_steps)
        else:
            raw_delta = max(0, cumulative_steps - self.last_raw_count)
        self.second_last_raw_count = self.last_raw_count
        self.last_raw_count = cumulative_steps

        delta = min(raw_delta, max_delta)
        if delta > 0:
            if self.is_moving:
                self._close_interval(now)
            self.moving_start_time = now
            self.is_moving = True
            self.phase = AggregatorPhase.MOVING
            self.total_steps += delta
        elif self.is_moving:
            self._close_interval(now)
            self.moving_start_time = None
            self.is_moving = False
            self.phase = AggregatorPhase.IDLE
        return delta

    def reset_day(self, at: datetime) -> None:
        """Zero the daily totals; an open movement interval restarts at ``at``."""
        self.total_steps = 0
        self.total_active_time = 0.0
        if self.is_moving:
            self.moving_start_time = at

    def _close_interval(self, now: datetime) -> None:
        if self.moving_start_time is None:
            return
        elapsed = (now - self.moving_start_time).total_seconds()
        # Out-of-order timestamps never shrink the active time.
        self.total_active_time += max(elapsed, 0.0)


def build_snapshot(state: AggregatorState, profile: UserProfile) -> HealthSnapshot:
    """Derive the daily snapshot from the aggregator state and user profile."""
    steps = state.total_steps
    hours = state.active_time_hours
    return HealthSnapshot(
        steps=steps,
        active_energy=active_energy(steps, profile.weight_kg),
        distance=distance(steps, profile.unit_system),
        speed=speed(distance_km(steps), hours, profile.unit_system, profile.speed_unit),
        active_time=hours,
    )


class StepAggregator:
    """Consumes the sensor stream and drives the DailyAggregateStore.

    Sensor callbacks may fire on any thread; readings are queued and
    processed one at a time, in arrival order, by a single consumer task
    running on the loop that called start().
    """

    def __init__(
        self,
        sensor: StepSensor,
        store: DailyAggregateStore,
        settings: SettingsStore,
        *,
        max_step_delta: int = MAX_STEP_DELTA,
        zone: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
        auto_rollover: bool = True,
    ) -> None:
        self._sensor = sensor
        self._store = store
        self._settings = settings
        self._max_step_delta = max_step_delta
        self._zone = zone or tz.tzlocal()
        self._clock = clock or (lambda: datetime.now(self._zone))
        self._auto_rollover = auto_rollover
        self.state = AggregatorState()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[StepEvent] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._subscription: SensorSubscription | None = None
        self._stopped = False

    @property
    def phase(self) -> AggregatorPhase:
        return self.state.phase

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._stopped

    async def __aenter__(self) -> StepAggregator:
        await self.start()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.stop()

    async def start(self) -> None:
        """Check the sensor, seed today's count and subscribe to readings.

        Raises:
            SensorUnavailableError: If the sensor is absent. The session is
                failed for good; later calls raise again without retrying.
        """
        if self.state.phase is AggregatorPhase.FAILED:
            raise SensorUnavailableError()
        if self.state.phase is not AggregatorPhase.UNINITIALIZED or self._stopped:
            return
        if not await self._sensor.is_available():
            self.state.phase = AggregatorPhase.FAILED
            logger.error("sensor_unavailable")
            raise SensorUnavailableError()

        now = self._now()
        seed = await self._sensor.query_step_count(self._midnight(now), now)
        if self._stopped:
            return
        self.state.seed(seed.steps)
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume())
        self._subscription = self._sensor.subscribe(self._on_reading)
        logger.info("aggregator_started", seed_steps=self.state.total_steps)

    async def stop(self) -> None:
        """Unsubscribe and stop processing; safe to call any number of times."""
        first = not self._stopped
        self._stopped = True
        if self._subscription is not None:
            self._subscription.unsubscribe()
        consumer, self._consumer = self._consumer, None
        if consumer is not None and consumer is not asyncio.current_task():
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        if first:
            logger.info(
                "aggregator_stopped",
                total_steps=self.state.total_steps,
                active_seconds=round(self.state.total_active_time, 1),
            )

    async def drain(self) -> None:
        """Wait until every queued reading has been processed."""
        if self._queue is None or self._stopped:
            return
        await asyncio.sleep(0)
        await self._queue.join()

    async def process(self, cumulative_steps: int, now: datetime | None = None) -> int:
        """Process one raw reading and publish the snapshot when steps were added.

        Returns:
            The clamped delta (0 after stop()).
        """
        if self._stopped:
            return 0
        now = self._aware(now) if now is not None else self._now()
        if self._auto_rollover:
            self._maybe_rollover(now)
        delta = self.state.apply(cumulative_steps, now, self._max_step_delta)
        logger.debug(
            "step_event",
            raw=cumulative_steps,
            delta=delta,
            total_steps=self.state.total_steps,
            phase=self.state.phase.value,
        )
        if delta > 0:
            await self._publish()
        return delta

    async def resync(self) -> int:
        """Raise total_steps to the sensor's day-scoped count if it is higher.

        Returns:
            total_steps after the resync.
        """
        if self._stopped:
            return self.state.total_steps
        now = self._now()
        result = await self._sensor.query_step_count(self._midnight(now), now)
        if self._stopped:
            return self.state.total_steps
        if result.steps > self.state.total_steps:
            logger.info(
                "resync", previous=self.state.total_steps, queried=result.steps
            )
            self.state.total_steps = result.steps
            await self._publish()
        return self.state.total_steps

    def rollover(
        self, day: date | None = None, *, at: datetime | None = None
    ) -> HealthSnapshot:
        """Archive the day into the weekly history and zero the daily totals.

        Nothing changes when the store's day is already ``day`` or later:
        the midnight trigger and the first event after midnight may both
        ask for the same rollover.

        Args:
            day: The day that starts (default: local date of ``at``).
            at: Rollover instant (default: now).

        Returns:
            The archived snapshot, or the current one when nothing rolled over.
        """
        at = self._aware(at) if at is not None else self._now()
        new_day = day or at.astimezone(self._zone).date()
        if new_day <= self._store.day:
            return self._store.snapshot
        archived = self._store.rollover(new_day)
        self.state.reset_day(at)
        return archived

    def _maybe_rollover(self, now: datetime) -> None:
        today = now.astimezone(self._zone).date()
        if today > self._store.day:
            self.rollover(today, at=self._midnight(now))

    def _on_reading(self, event: StepEvent) -> None:
        loop, queue = self._loop, self._queue
        if self._stopped or loop is None or queue is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            queue.put_nowait(event)
        else:
            loop.call_soon_threadsafe(queue.put_nowait, event)

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            event = await self._queue.get()
            try:
                await self.process(event.steps, event.timestamp)
            except Exception:
                logger.exception("step_event_failed", steps=event.steps)
            finally:
                self._queue.task_done()

    async def _publish(self) -> None:
        profile = await load_profile(self._settings, self._store.unit_system)
        if self._stopped:
            logger.debug("snapshot_discarded_after_stop")
            return
        # Built after the settings read so the write reflects current state.
        snapshot = build_snapshot(self.state, profile)
        self._store.update(lambda _current: snapshot)

    def _now(self) -> datetime:
        return self._aware(self._clock())

    def _aware(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self._zone)
        return value

    def _midnight(self, now: datetime) -> datetime:
        local = now.astimezone(self._zone)
        return datetime.combine(local.date(), time.min, tzinfo=self._zone)
