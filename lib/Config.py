"""
Configuration Module

This module reads the runner configuration from the process
environment, decodes the base64-encoded schedule and command, and
validates every value before the scheduler starts.

Responsibilities:
- Read and decode environment variables
- Validate schedule, time zone, durations and modes
- Expose the result as a config dict and a JobConfig
"""

## version related
__author__ = "Kyle"
__version__ = "0.1.0"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import os
import base64
import binascii
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

## import private pkgs
from CronSchedule import CronSchedule
from JobConfig import JobConfig, LOG_FILE_MODES, LOG_FILE_PER_ATTEMPT, RESTART_MODES, RESTART_ON_FAILURE

## accepted truthy values of RESTART_ON_FAIL
TRUE_VALUES = ('1', 'true', 'yes', 'y')

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

DEFAULTS = {
    'max_instances': 10,
    'misfire_grace_time': 30,
    'max_workers': 10,
    'coalesce': True,
    'log_level': 'INFO',
}

class ConfigError(Exception):
    """
    Invalid or missing configuration. Fatal at startup.
    """

class Config(object):
    """
    Environment-backed runner configuration.

    Attributes:
        config (dict): Resolved settings, grouped as 'cron', 'job' and 'log'
        schedule (CronSchedule): Parsed schedule
        job (JobConfig): Job definition handed to the execution engine
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """
        Load and validate the configuration.

        Args:
            environ (dict): Environment mapping, defaults to os.environ

        Returns:
            None

        Raises:
            ConfigError: A required value is missing or a value is invalid
        """

        self.environ = os.environ if environ is None else environ
        self.config = self.load()
        self.schedule = self.config['cron']['schedule']
        self.job = JobConfig.from_command_line(
            self.config['job']['command'],
            kill_after = self.config['job']['kill_after'],
            restart_on_failure = self.config['job']['restart_on_failure'],
            log_path = self.config['log']['file'],
            restart_mode = self.config['job']['restart_mode'],
            log_file_mode = self.config['log']['file_mode'],
        )

    def _get(self, key: str) -> str:
        return (self.environ.get(key) or '').strip()

    def _require(self, key: str) -> str:
        value = self._get(key)
        if not value:
            raise ConfigError('%s environment variable is required' % (key))

        return value

    def _decode(self, key: str) -> str:
        try:
            return base64.b64decode(self._require(key), validate = True).decode('utf-8')

        except (binascii.Error, UnicodeDecodeError) as e:
            raise ConfigError('failed to decode %s: %s' % (key, e)) from e

    def _int(self, key: str, default: Optional[int], minimum: int = 0) -> Optional[int]:
        raw = self._get(key)
        if not raw:
            return default

        try:
            value = int(raw)

        except ValueError as e:
            raise ConfigError('invalid %s value: %r' % (key, raw)) from e

        if value < minimum:
            raise ConfigError('%s must be >= %d, got %d' % (key, minimum, value))

        return value

    def _choice(self, key: str, choices: tuple, default: str) -> str:
        value = self._get(key).lower() or default
        if value not in choices:
            raise ConfigError('invalid %s value %r, expected one of %s' % (key, value, ', '.join(choices)))

        return value

    def _timezone(self) -> Optional[ZoneInfo]:
        name = self._get('CRON_TZ')
        if not name:
            return None

        try:
            return ZoneInfo(name)

        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError('invalid CRON_TZ value %r: %s' % (name, e)) from e

    def load(self) -> dict:
        """
        Resolve every setting from the environment.

        Returns:
            dict: Resolved settings
        """

        expression = self._decode('CRON_EXPRESSION')
        command = self._decode('CRON_CMD')

        try:
            schedule = CronSchedule.parse(expression)

        except ValueError as e:
            raise ConfigError('invalid cron expression %r: %s' % (expression, e)) from e

        kill_after_min = self._int('CRON_KILL_AFTER_MIN', 0)
        log_level = self._get('LOG_LEVEL').upper() or DEFAULTS['log_level']
        if log_level not in LOG_LEVELS:
            raise ConfigError('invalid LOG_LEVEL value: %r' % (log_level))

        max_instances = self._int('CRON_MAX_INSTANCES', DEFAULTS['max_instances'], minimum = 1)

        return {
            'cron': {
                'expression': expression,
                'schedule': schedule,
                'timezone': self._timezone(),
                'max_instances': max_instances,
                'max_workers': max(DEFAULTS['max_workers'], max_instances),
                'misfire_grace_time': self._int('CRON_MISFIRE_GRACE_TIME', DEFAULTS['misfire_grace_time']),
                'coalesce': DEFAULTS['coalesce'],
            },
            'job': {
                'command': command,
                'kill_after_min': kill_after_min,
                'kill_after': kill_after_min * 60.0 if kill_after_min else None,
                'restart_on_failure': self._get('RESTART_ON_FAIL').lower() in TRUE_VALUES,
                'restart_mode': self._choice('RESTART_MODE', RESTART_MODES, RESTART_ON_FAILURE),
            },
            'log': {
                'file': self._get('LOG_FILE') or None,
                'file_mode': self._choice('LOG_FILE_MODE', LOG_FILE_MODES, LOG_FILE_PER_ATTEMPT),
                'level': log_level,
            },
        }
