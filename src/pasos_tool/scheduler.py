"""Disparadores periódicos: cambio de día a medianoche local y resync con el sensor."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, time, timedelta, tzinfo

import structlog
from dateutil import tz

from pasos_tool.aggregator import StepAggregator

logger = structlog.get_logger(__name__)

# Default gap between day-scoped sensor queries in live mode.
RESYNC_INTERVAL_SECONDS = 15 * 60.0


def next_midnight(now: datetime, zone: tzinfo | None = None) -> datetime:
    """Return the next local midnight strictly after ``now``."""
    zone = zone or now.tzinfo or tz.tzlocal()
    local = now.astimezone(zone) if now.tzinfo else now.replace(tzinfo=zone)
    tomorrow = local.date() + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=zone)


def seconds_until_midnight(now: datetime, zone: tzinfo | None = None) -> float:
    """Seconds from ``now`` to the next local midnight (DST aware)."""
    midnight = next_midnight(now, zone)
    local = now if now.tzinfo else now.replace(tzinfo=midnight.tzinfo)
    # Same-tzinfo subtraction ignores UTC offsets; compare in UTC instead.
    elapsed = midnight.astimezone(tz.UTC) - local.astimezone(tz.UTC)
    return max(elapsed.total_seconds(), 0.0)


async def run_midnight_rollover(
    aggregator: StepAggregator,
    zone: tzinfo | None = None,
    *,
    clock: Callable[[], datetime] | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    max_rollovers: int | None = None,
) -> None:
    """Call aggregator.rollover() at every local midnight until cancelled.

    Args:
        aggregator: Aggregator whose day is closed at midnight.
        zone: Local time zone (default: system zone).
        clock: Current time provider.
        sleep: Awaitable sleep, injectable for tests.
        max_rollovers: Stop after this many rollovers (None: run forever).
    """
    zone = zone or tz.tzlocal()
    clock = clock or (lambda: datetime.now(zone))
    done = 0
    while max_rollovers is None or done < max_rollovers:
        delay = seconds_until_midnight(clock(), zone)
        logger.debug("rollover_scheduled", seconds=round(delay, 1))
        await sleep(delay)
        now = clock()
        aggregator.rollover(now.astimezone(zone).date(), at=now)
        done += 1


async def run_periodic_resync(
    aggregator: StepAggregator,
    interval: float = RESYNC_INTERVAL_SECONDS,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    max_runs: int | None = None,
) -> None:
    """Call aggregator.resync() every ``interval`` seconds until cancelled.

    Returns early once the aggregator has stopped.
    """
    done = 0
    while max_runs is None or done < max_runs:
        await sleep(interval)
        if not aggregator.running:
            logger.debug("resync_skipped_not_running")
            return
        total = await aggregator.resync()
        logger.debug("resync_done", total_steps=total)
        done += 1
