"""
Pytest configuration and shared fixtures for cronrunner tests.
"""

import io
import base64
import logging

import pytest

from OutputSink import OutputSink


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@pytest.fixture
def logger() -> logging.Logger:
    """Diagnostic logger that propagates to caplog"""
    log = logging.getLogger("cronrunner.tests")
    log.setLevel(logging.DEBUG)
    return log


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def streams():
    """Binary stdout/stderr stand-ins"""
    return io.BytesIO(), io.BytesIO()


@pytest.fixture
def sink(logger, streams) -> OutputSink:
    """Sink writing to in-memory streams, no log file"""
    stdout, stderr = streams
    return OutputSink(logger, stdout=stdout, stderr=stderr)
