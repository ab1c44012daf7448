"""Shared test fixtures."""

from concurrent.futures import Executor, Future
from datetime import datetime, timezone

import pytest

from subscription_timer.services.time_controller import TimeController
from subscription_timer.utils.timestamps import to_millis

START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class InlineExecutor(Executor):
    """Runs submitted work immediately in the calling thread."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


@pytest.fixture
def start_time():
    """Fixed virtual start time."""
    return START


@pytest.fixture
def time_controller():
    """Virtual clock positioned at START."""
    controller = TimeController(start_time_millis=to_millis(START))
    yield controller
    controller.shutdown()


@pytest.fixture
def inline_executor():
    return InlineExecutor()
