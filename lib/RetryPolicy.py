"""
Retry Policy Module

This module decides whether a firing starts another attempt after
the previous one concluded. Retries are immediate; waiting is never
part of the policy.
"""

## import builtin pkgs
from enum import Enum

## import private pkgs
from JobConfig import RESTART_MODES, RESTART_ON_FAILURE, RESTART_ON_TIMEOUT
from ProcessRunner import RunAttempt

class Decision(Enum):
    CONTINUE = 'continue'
    STOP = 'stop'

class RetryPolicy(object):
    """
    Continue/stop decision for a concluded attempt.

    - a successful attempt always stops
    - mode "failure": failed attempts continue, deadline kills stop
    - mode "timeout": only deadline kills continue
    - nothing continues while restart_on_failure is off
    """

    def __init__(self, restart_on_failure: bool, mode: str = RESTART_ON_FAILURE) -> None:
        if mode not in RESTART_MODES:
            raise ValueError('unknown restart mode: %s' % (mode))

        self.restart_on_failure = restart_on_failure
        self.mode = mode

    def decide(self, attempt: RunAttempt) -> Decision:
        """
        Decide what happens after an attempt.

        Args:
            attempt (RunAttempt): The attempt that just concluded

        Returns:
            Decision: CONTINUE to start another attempt, STOP otherwise
        """

        if attempt.succeeded or not self.restart_on_failure:
            return Decision.STOP

        if self.mode == RESTART_ON_TIMEOUT:
            return Decision.CONTINUE if attempt.was_killed_by_timeout else Decision.STOP

        return Decision.STOP if attempt.was_killed_by_timeout else Decision.CONTINUE
