"""
Tests for the scheduler service lifecycle.
"""

import time
import signal
import logging
from threading import Event
from unittest.mock import MagicMock

import pytest

from CronRunnerService import JOB_ID, APSchedulerForwardHandler, CronRunnerService
from CronSchedule import CronSchedule
from JobConfig import JobConfig
from JobExecutor import JobExecutor
from OutputSink import OutputSink

## never fires during a test run
FAR_AWAY = "0 0 0 1 1 *"


class RecordingExecutor:
    """Stand-in executor recording firings"""

    job = JobConfig(command=("true",))

    def __init__(self):
        self.calls = []

    def run(self, stop_event=None):
        self.calls.append(stop_event)


class BlockingExecutor:
    """Stand-in executor holding every firing until released"""

    job = JobConfig(command=("true",))

    def __init__(self):
        self.calls = 0
        self.release = Event()

    def run(self, stop_event=None):
        self.calls += 1
        self.release.wait(10)


@pytest.fixture
def executor(logger, sink):
    return JobExecutor(logger, JobConfig(command=("true",)), sink=sink)


@pytest.fixture
def service(logger, executor):
    svc = CronRunnerService(logger, executor, CronSchedule.parse(FAR_AWAY), timezone="UTC", max_instances=1)
    yield svc
    if svc.running:
        svc.stop(wait=False)


class TestLifecycle:

    def test_start_and_stop(self, service):
        service.start()

        assert service.running
        assert service.next_fire_time() is not None

        service.stop()

        assert not service.running

    def test_job_defaults_applied(self, service, executor):
        service.start()
        job = service._scheduler.get_job(JOB_ID)

        assert job.max_instances == 1
        assert job.coalesce
        assert job.misfire_grace_time == 30
        assert job.name == "true"
        assert job.kwargs["stop_event"] is service._stop_event

    def test_stop_signals_in_flight_firings(self, service):
        service.start()
        service.stop()

        assert service._stop_event.is_set()

    def test_serve_forever_returns_after_signal(self, service, monkeypatch):
        installed = {}
        monkeypatch.setattr(signal, "signal", lambda signum, handler: installed.setdefault(signum, handler))

        ## the handler runs before the loop starts waiting
        service._handle_exit(signal.SIGTERM, None)
        service.serve_forever()

        assert set(installed) == {signal.SIGTERM, signal.SIGINT}
        assert not service.running


class TestFiring:

    def test_trigger_invokes_executor(self, logger):
        executor = RecordingExecutor()
        svc = CronRunnerService(logger, executor, CronSchedule.parse(FAR_AWAY), timezone="UTC")
        svc.start()
        try:
            svc._scheduler.get_job(JOB_ID).func(stop_event=svc._stop_event)
        finally:
            svc.stop(wait=False)

        assert executor.calls == [svc._stop_event]


class TestOverlap:

    def run_blocked(self, logger, max_instances):
        executor = BlockingExecutor()
        svc = CronRunnerService(logger, executor, CronSchedule.parse("@every 1s"), timezone="UTC", max_instances=max_instances)
        svc.start()
        try:
            ## the first firing blocks across the next two triggers
            time.sleep(2.6)
            calls = executor.calls
        finally:
            executor.release.set()
            svc.stop()

        return calls

    def test_single_flight_skips_overlapping_trigger(self, logger, caplog):
        with caplog.at_level(logging.WARNING, logger=logger.name):
            calls = self.run_blocked(logger, max_instances=1)

        assert calls == 1
        assert "maximum number of running instances" in caplog.text

    def test_overlap_allowed_by_default(self, logger):
        assert self.run_blocked(logger, max_instances=10) >= 2


class TestShutdown:

    def test_persistent_log_file_closed_on_stop(self, logger, streams, tmp_path):
        stdout, stderr = streams
        sink = OutputSink(logger, str(tmp_path / "run.log"), mode="persistent", stdout=stdout, stderr=stderr)
        executor = JobExecutor(logger, JobConfig(command=("true",)), sink=sink)
        svc = CronRunnerService(logger, executor, CronSchedule.parse(FAR_AWAY), timezone="UTC")
        svc.start()

        executor.run()
        shared = sink._shared
        assert not shared.closed

        svc.stop()

        assert shared.closed


class TestForwardHandler:

    def test_levels_are_mapped(self):
        target = MagicMock()
        handler = APSchedulerForwardHandler(target)
        source = logging.getLogger("apscheduler.test-forward")
        source.addHandler(handler)
        source.propagate = False
        try:
            source.warning("missed")
            source.error("broken")
        finally:
            source.removeHandler(handler)

        target.warning.assert_called_once()
        target.error.assert_called_once()
        assert "missed" in target.warning.call_args[0][0]["apscheduler"]
