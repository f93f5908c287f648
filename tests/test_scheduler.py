from __future__ import annotations

import asyncio
from datetime import date, datetime

from dateutil import tz

from pasos_tool.model import HealthSnapshot
from pasos_tool.scheduler import (
    next_midnight,
    run_midnight_rollover,
    seconds_until_midnight,
)

UTC = tz.UTC
MADRID = tz.gettz("Europe/Madrid")


class _StubAggregator:
    def __init__(self) -> None:
        self.calls: list[tuple[date | None, datetime | None]] = []

    def rollover(
        self, day: date | None = None, *, at: datetime | None = None
    ) -> HealthSnapshot:
        self.calls.append((day, at))
        return HealthSnapshot.zero()


def test_next_midnight_is_strictly_after_now() -> None:
    now = datetime(2025, 12, 15, 0, 0, tzinfo=UTC)
    assert next_midnight(now) == datetime(2025, 12, 16, tzinfo=UTC)


def test_seconds_until_midnight_uses_local_zone() -> None:
    now = datetime(2025, 12, 15, 22, 30, tzinfo=UTC)
    # 23:30 in Madrid (UTC+1)
    assert seconds_until_midnight(now, MADRID) == 1800.0


def test_seconds_until_midnight_on_short_dst_day() -> None:
    now = datetime(2025, 3, 30, 0, 0, tzinfo=MADRID)
    assert seconds_until_midnight(now, MADRID) == 23 * 3600.0


def test_run_midnight_rollover_sleeps_then_rolls_over() -> None:
    times = iter(
        [
            datetime(2025, 12, 15, 23, 59, 30, tzinfo=UTC),
            datetime(2025, 12, 16, 0, 0, 0, tzinfo=UTC),
        ]
    )
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    aggregator = _StubAggregator()
    asyncio.run(
        run_midnight_rollover(
            aggregator,  # type: ignore[arg-type]
            UTC,
            clock=lambda: next(times),
            sleep=_sleep,
            max_rollovers=1,
        )
    )

    assert delays == [30.0]
    assert aggregator.calls == [
        (date(2025, 12, 16), datetime(2025, 12, 16, tzinfo=UTC)),
    ]
