"""Test configuration and fixtures."""

import logging

import pytest


@pytest.fixture(autouse=True)
def _capture_pipeline_logs(caplog):
    """Capture pipeline logs at DEBUG so tests can assert on them."""
    caplog.set_level(logging.DEBUG, logger="adaptive_memory")
    yield


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    """Fake clock starting at a fixed Unix timestamp."""
    return FakeClock()
