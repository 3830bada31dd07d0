"""Shared fixtures: a mocked Platform client and a deterministic clock."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from fleetopt.sdk.client import PlatformClient


class MockClock:
    """A controllable clock; ``sleep`` advances time instead of blocking."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._now += seconds


@pytest.fixture()
def clock() -> MockClock:
    return MockClock()


@pytest.fixture()
def client() -> MagicMock:
    return MagicMock(spec=PlatformClient)
