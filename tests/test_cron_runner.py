"""
Tests for the process entry point.
"""

import pytest

import CronRunner
from Config import ConfigError
from conftest import b64


def test_builds_executor_from_environment(tmp_path):
    runner = CronRunner.CronRunner({
        "CRON_EXPRESSION": b64("0 * * * * *"),
        "CRON_CMD": b64("echo hi"),
        "CRON_KILL_AFTER_MIN": "1",
        "LOG_FILE": str(tmp_path / "job.log"),
    })

    assert runner.executor.job.command == ("echo", "hi")
    assert runner.executor.job.kill_after == 60.0
    assert runner.executor.sink.log_path == str(tmp_path / "job.log")
    assert runner.config["name"] == "cronrunner"


def test_invalid_environment_raises():
    with pytest.raises(ConfigError):
        CronRunner.CronRunner({"CRON_CMD": b64("true")})


def test_main_exits_on_config_error(monkeypatch, capsys):
    monkeypatch.delenv("CRON_EXPRESSION", raising=False)
    monkeypatch.delenv("CRON_CMD", raising=False)

    with pytest.raises(SystemExit) as info:
        CronRunner.main()

    assert info.value.code == 1
    assert "CRON_EXPRESSION" in capsys.readouterr().err
