from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

import pytest

from custom_components.aio_presence.models import PresenceOptions
from custom_components.aio_presence.runtime.engine import AggregationEngine

START = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@dataclass
class _Timer:
    due: float
    action: Callable[[], None]
    cancelled: bool = False


@dataclass
class FakeTimers:
    """Stand-in for async_call_later driven by a FakeClock."""

    clock: FakeClock
    timers: list[_Timer] = field(default_factory=list)
    fail_next: bool = False
    cancel_is_noop: bool = False

    def call_later(self, delay: float, action: Callable[[], None]) -> Callable[[], None]:
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("scheduler unavailable")
        timer = _Timer(due=self.clock.now + delay, action=action)
        self.timers.append(timer)

        def _cancel() -> None:
            if not self.cancel_is_noop:
                timer.cancelled = True

        return _cancel

    @property
    def pending(self) -> list[_Timer]:
        return [t for t in self.timers if not t.cancelled]

    def drop_all(self) -> None:
        """Lose every timer silently, as a host restart would."""
        self.timers.clear()

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = sorted((t for t in self.pending if t.due <= target), key=lambda t: t.due)
            if not due:
                break
            timer = due[0]
            timer.cancelled = True
            self.clock.now = max(self.clock.now, timer.due)
            timer.action()
        self.clock.now = target


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers(clock: FakeClock) -> FakeTimers:
    return FakeTimers(clock)


@pytest.fixture
def make_engine(clock: FakeClock, timers: FakeTimers):
    def _make(options: PresenceOptions | None = None, **kwargs) -> AggregationEngine:
        return AggregationEngine(
            options or PresenceOptions(),
            call_later=timers.call_later,
            clock=clock,
            **kwargs,
        )

    return _make


class RecordingSink:
    """PresenceChangeSink that records what a machine reports."""

    def __init__(self) -> None:
        self.changes: list[tuple[str, str, str]] = []
        self.state_changes = 0
        self.away = False

    def presence_changed(self, machine, previous) -> None:
        self.changes.append((machine.identity, str(previous), str(machine.final_presence)))

    def state_changed(self, machine) -> None:
        self.state_changes += 1

    def away_hint_active(self) -> bool:
        return self.away


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
