"""Shared fakes for coordinator and event loop tests."""

from pathlib import Path

import pytest

from git_autosync.coordinator import Coordinator, SyncState
from git_autosync.cycles import CycleReport, PullReport
from git_autosync.watcher import ChangeEvent, EventKind


class FakeClock:
    """A manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTarget:
    """Stands in for `Workspace`, recording how the coordinator drives it.

    Attributes:
        active (int): Cycles currently running; must never exceed one.
        states (list[SyncState]): Coordinator state observed inside each cycle.
    """

    def __init__(self):
        self.coordinator: Coordinator | None = None
        self.commits = 0
        self.pulls = 0
        self.blocked = False
        self.dirty: list[str] = []
        self.pull_ok = True
        self.on_commit = None
        self.on_pull = None
        self.active = 0
        self.max_active = 0
        self.states: list[SyncState] = []

    def _enter(self) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        if self.coordinator is not None:
            self.states.append(self.coordinator.current_state)

    def commit_push(self) -> CycleReport:
        self._enter()
        self.commits += 1
        try:
            if self.on_commit:
                self.on_commit()
        finally:
            self.active -= 1
        return CycleReport(committed=["."], pushed=["."])

    def pull(self) -> PullReport:
        self._enter()
        self.pulls += 1
        try:
            if self.on_pull:
                self.on_pull()
        finally:
            self.active -= 1
        report = PullReport(superproject_ok=self.pull_ok)
        (report.pulled if self.pull_ok else report.failed).append(".")
        return report

    def is_blocked(self) -> bool:
        return self.blocked

    def dirty_trees(self) -> list[str]:
        return self.dirty


def change(name: str = "notes.md", kind: EventKind = EventKind.CHANGE) -> ChangeEvent:
    return ChangeEvent(kind, Path("/watched") / name)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def target() -> FakeTarget:
    return FakeTarget()


@pytest.fixture
def coordinator(target: FakeTarget, clock: FakeClock) -> Coordinator:
    """A coordinator with a 5 second batch window over a fake workspace."""
    coord = Coordinator(target, batch_interval=5.0, clock=clock)
    target.coordinator = coord
    return coord
