"""Pytest setup: app timers for tests, anyio on asyncio, shared fixtures."""

from __future__ import annotations

import os
import random

import pytest

os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["RECONNECT_GRACE_SECONDS"] = "5"
os.environ["AI_THINK_MIN_SECONDS"] = "0"
os.environ["AI_THINK_MAX_SECONDS"] = "0"

from src.salvo.rooms.coordinator import GameCoordinator  # noqa: E402
from tests.helpers import GRACE_PERIOD, IDLE_TIMEOUT, FakeClock, RecordingNotifier  # noqa: E402


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def coordinator(notifier: RecordingNotifier, clock: FakeClock) -> GameCoordinator:
    return GameCoordinator(
        notifier,
        grace_period=GRACE_PERIOD,
        idle_timeout=IDLE_TIMEOUT,
        ai_think_delay=(0.0, 0.0),
        clock=clock,
        rng=random.Random(7),
    )
