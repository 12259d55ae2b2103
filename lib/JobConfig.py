"""
Job Configuration Module

This module defines the JobConfig data structure consumed by the
execution engine. A JobConfig is built once at process start and
shared read-only by every firing of the scheduled job.
"""

## import builtin pkgs
from dataclasses import dataclass
from typing import Optional, Tuple

## retry triggers
RESTART_ON_FAILURE = 'failure'
RESTART_ON_TIMEOUT = 'timeout'
RESTART_MODES = (RESTART_ON_FAILURE, RESTART_ON_TIMEOUT)

## log file tee modes
LOG_FILE_PER_ATTEMPT = 'attempt'
LOG_FILE_PERSISTENT = 'persistent'
LOG_FILE_MODES = (LOG_FILE_PER_ATTEMPT, LOG_FILE_PERSISTENT)

@dataclass(frozen = True)
class JobConfig(object):
    """
    Scheduled job definition.

    Attributes:
        command (tuple):
            Argv-style command tokens. The first token is the
            executable, no shell interpretation is applied.

        kill_after (float):
            Hard wall-clock budget in seconds for a whole firing,
            shared by all of its attempts. None means unbounded.

        restart_on_failure (bool):
            Whether a concluded attempt may be retried.

        log_path (str):
            Optional file that receives a copy of the child output,
            bracketed by run markers.

        restart_mode (str):
            Which attempt result is retried, "failure" or "timeout".

        log_file_mode (str):
            "attempt" opens the log file per attempt, "persistent"
            keeps one handle for the process lifetime.
    """

    command: Tuple[str, ...]
    kill_after: Optional[float] = None
    restart_on_failure: bool = False
    log_path: Optional[str] = None
    restart_mode: str = RESTART_ON_FAILURE
    log_file_mode: str = LOG_FILE_PER_ATTEMPT

    @classmethod
    def from_command_line(cls, command_line: str, **kwargs) -> 'JobConfig':
        """
        Build a JobConfig from a raw command line.

        The line is split on whitespace only, quotes and shell
        metacharacters are passed through as literal tokens.

        Args:
            command_line (str): Command line to split
            **kwargs: Remaining JobConfig fields

        Returns:
            JobConfig: New job configuration
        """

        return cls(command = tuple(command_line.split()), **kwargs)

    @property
    def command_line(self) -> str:
        return ' '.join(self.command)

    @property
    def is_empty(self) -> bool:
        return len(self.command) == 0
