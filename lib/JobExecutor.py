"""
Job Executor Module

This module turns one scheduled firing into a supervised run of the
configured command. It drives the attempt loop of the firing:

    Idle -> AttemptStarting -> AttemptRunning -> AttemptConcluded
         -> (Retrying -> AttemptStarting) | Done

The deadline of a firing is computed once and shared by all of its
attempts. Nothing is kept between firings; each call to run()
starts fresh.
"""

## version related
__author__ = "Kyle"
__version__ = "0.1.0"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import time
from dataclasses import dataclass, field
from threading import Event
from typing import Callable, List, Optional

## import private pkgs
from JobConfig import JobConfig
from OutputSink import OutputSink, format_duration
from ProcessRunner import ProcessRunner, RunAttempt
from RetryPolicy import Decision, RetryPolicy
from TimeoutGate import DeadlineExpired, TimeoutGate

@dataclass
class RunOutcome(object):
    """
    Result of one firing, consumed only for logging.

    Attributes:
        total_duration (float): Seconds from firing start to Done
        final_exit_code (int): Exit code of the last attempt, None if none ran
        attempts_made (int): Number of attempts started
        terminated_by_deadline (bool): The deadline ended the firing
        skipped (bool): The command was empty and nothing ran
        status (str): success, failure, timeout, deadline, skipped or error
        attempts (list): RunAttempt of every attempt, in order
    """

    total_duration: float = 0.0
    final_exit_code: Optional[int] = None
    attempts_made: int = 0
    terminated_by_deadline: bool = False
    skipped: bool = False
    status: str = 'success'
    attempts: List[RunAttempt] = field(default_factory = list)

class JobExecutor(object):
    """
    Per-firing orchestrator of the execution engine.

    One instance is registered with the scheduler and its run()
    method is called once per firing. Concurrent calls are safe:
    all firing state lives in local variables.
    """

    def __init__(self, logger: object, job: JobConfig, sink: Optional[OutputSink] = None, runner: Optional[ProcessRunner] = None, policy: Optional[RetryPolicy] = None, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Initialize the executor.

        Args:
            logger (object): Diagnostic logger
            job (JobConfig): Job definition shared by all firings
            sink (OutputSink): Output destinations, built from job if omitted
            runner (ProcessRunner): Child process runner, built if omitted
            policy (RetryPolicy): Retry policy, built from job if omitted
            clock (callable): Monotonic clock

        Returns:
            None
        """

        self.logger = logger
        self.job = job
        self.clock = clock
        self.sink = sink or OutputSink(logger, job.log_path, job.log_file_mode)
        self.runner = runner or ProcessRunner(logger, clock)
        self.policy = policy or RetryPolicy(job.restart_on_failure, job.restart_mode)

    def run(self, stop_event: Optional[Event] = None, max_attempts: Optional[int] = None) -> RunOutcome:
        """
        Execute one firing.

        This is the scheduled job entry point. It never raises:
        any unexpected error is logged and reported in the outcome
        so the scheduler keeps triggering.

        Args:
            stop_event (Event): When set, no further retry is started
            max_attempts (int): Optional cap on attempts, None for unbounded

        Returns:
            RunOutcome: Summary of the firing
        """

        started = self.clock()
        self.logger.info({'status': 'executing command', 'cmd': self.job.command_line})

        try:
            outcome = self._run(started, stop_event, max_attempts)

        except Exception as e:
            self.logger.exception({'status': 'firing failed', 'error': str(e)})
            outcome = RunOutcome(total_duration = self.clock() - started, status = 'error')

        return outcome

    def _run(self, started: float, stop_event: Optional[Event], max_attempts: Optional[int]) -> RunOutcome:
        ## Idle
        if self.job.is_empty:
            self.logger.info({'status': 'empty command, skipping execution'})
            return RunOutcome(skipped = True, status = 'skipped')

        gate = TimeoutGate(self.job.kill_after, self.clock)
        if gate.bounded:
            self.logger.info({'status': 'hard kill deadline set', 'deadline': gate.deadline.isoformat(), 'kill_after': format_duration(gate.deadline.kill_after)})

        outcome = RunOutcome(status = 'failure')
        number = 1
        while True:
            ## AttemptStarting
            try:
                budget = gate.remaining()

            except DeadlineExpired as e:
                self.logger.warning({'status': 'kill deadline reached, not starting attempt', 'attempt': number, 'deadline': e.deadline.isoformat()})
                outcome.terminated_by_deadline = True
                outcome.status = 'deadline'
                break

            ## AttemptRunning
            attempt = self._attempt(number, budget)
            outcome.attempts.append(attempt)
            outcome.attempts_made = number
            outcome.final_exit_code = attempt.exit_code
            outcome.status = attempt.status

            ## AttemptConcluded
            self._log_attempt(attempt, gate)
            if attempt.was_killed_by_timeout:
                outcome.terminated_by_deadline = True

            if self.policy.decide(attempt) is Decision.STOP:
                break

            if stop_event is not None and stop_event.is_set():
                self.logger.info({'status': 'stop requested, not restarting', 'attempt': number})
                break

            if max_attempts is not None and number >= max_attempts:
                self.logger.info({'status': 'attempt limit reached, not restarting', 'attempt': number})
                break

            ## Retrying
            self.logger.info({'status': 'restart on failure enabled, restarting command', 'mode': self.policy.mode, 'next_attempt': number + 1})
            number += 1

        ## Done
        outcome.total_duration = self.clock() - started
        self.logger.info({
            'status': 'command completed',
            'result': outcome.status,
            'attempts': outcome.attempts_made,
            'exit_code': outcome.final_exit_code,
            'duration': format_duration(outcome.total_duration),
            'terminated_by_deadline': outcome.terminated_by_deadline,
        })
        return outcome

    def _attempt(self, number: int, budget: Optional[float]) -> RunAttempt:
        self.logger.info({
            'status': 'attempt start',
            'attempt': number,
            'budget': None if budget is None else format_duration(budget),
        })

        with self.sink.open_attempt() as output:
            attempt = self.runner.run(self.job.command, output, budget, number)
            output.finish(attempt.exit_code, attempt.duration, attempt.was_killed_by_timeout)

        return attempt

    def _log_attempt(self, attempt: RunAttempt, gate: TimeoutGate) -> None:
        info = {
            'attempt': attempt.attempt_number,
            'duration': format_duration(attempt.duration),
            'exit_code': attempt.exit_code,
            'killed_by_timeout': attempt.was_killed_by_timeout,
            'error': None if attempt.error is None else str(attempt.error),
        }

        if attempt.was_killed_by_timeout:
            info['status'] = 'command timed out, hard deadline reached'
            info['deadline'] = gate.deadline.isoformat()
            self.logger.error(info)

        elif attempt.succeeded:
            info['status'] = 'command exited'
            self.logger.info(info)

        else:
            info['status'] = 'command failed'
            self.logger.warning(info)
