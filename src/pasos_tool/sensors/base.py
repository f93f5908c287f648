"""Clases base para sensores de pasos."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from pasos_tool.model import StepCount, StepEvent

StepCallback = Callable[[StepEvent], None]


class SensorSubscription:
    """Handle returned by StepSensor.subscribe.

    unsubscribe() may be called any number of times.
    """

    def __init__(self, on_remove: Callable[[], None]) -> None:
        self._on_remove: Callable[[], None] | None = on_remove
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._on_remove is not None

    def unsubscribe(self) -> None:
        with self._lock:
            on_remove, self._on_remove = self._on_remove, None
        if on_remove is not None:
            on_remove()


class StepSensor(ABC):
    """Abstract step-count sensor."""

    def __init__(self) -> None:
        self._callbacks: list[StepCallback] = []
        self._callbacks_lock = threading.Lock()

    @abstractmethod
    async def is_available(self) -> bool:
        """Return True when the hardware/OS step counter can be used."""

    @abstractmethod
    async def query_step_count(self, start: datetime, end: datetime) -> StepCount:
        """Return the absolute step count recorded between start and end."""

    def subscribe(self, callback: StepCallback) -> SensorSubscription:
        """Register a callback for cumulative step readings.

        Args:
            callback: Called with each StepEvent, possibly from another thread.

        Returns:
            Subscription handle.
        """
        with self._callbacks_lock:
            self._callbacks.append(callback)
        return SensorSubscription(lambda: self._remove(callback))

    @property
    def subscriber_count(self) -> int:
        with self._callbacks_lock:
            return len(self._callbacks)

    def _remove(self, callback: StepCallback) -> None:
        with self._callbacks_lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def emit(self, event: StepEvent) -> None:
        """Deliver a reading to every current subscriber."""
        with self._callbacks_lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback(event)
