"""
Process Runner Module

This module owns the lifecycle of one child process attempt:
start, output attachment, wait, deadline-triggered termination and
exit status extraction.

Responsibilities:
- Start the command without shell interpretation
- Stream child output to the attempt sinks while it runs
- Race the process exit against the attempt budget
- Kill the process group when the budget elapses first
- Report exit code, timeout flag and start errors
"""

## version related
__author__ = "Kyle"
__version__ = "0.1.0"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import os
import time
import signal
import subprocess
from dataclasses import dataclass
from datetime import datetime
from threading import Thread
from typing import Callable, Optional, Sequence

## import private pkgs
from OutputSink import AttemptOutput

## read size of the output pumps
CHUNK_SIZE = 65536

## seconds to wait for pumps to drain once the child is gone
PUMP_JOIN_TIMEOUT = 5.0

## exit codes reported when the command cannot be started
EXIT_NOT_FOUND = 127
EXIT_CANNOT_EXECUTE = 126

## exit code reported for an attempt killed by the deadline
EXIT_KILLED = -1

@dataclass
class RunAttempt(object):
    """
    Result of one attempt inside a firing.

    Attributes:
        attempt_number (int): 1-based attempt counter
        started_at (datetime): Wall clock start of the attempt
        exit_code (int): Process exit code, negative for signal deaths
        was_killed_by_timeout (bool): The deadline killed the process
        error (Exception): Start error, None when the process started
        duration (float): Attempt duration in seconds
    """

    attempt_number: int
    started_at: datetime
    exit_code: int = 0
    was_killed_by_timeout: bool = False
    error: Optional[BaseException] = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.was_killed_by_timeout and self.exit_code == 0

    @property
    def status(self) -> str:
        if self.was_killed_by_timeout:
            return 'timeout'

        return 'success' if self.succeeded else 'failure'

class ProcessRunner(object):
    """
    Runner of a single child process attempt.
    """

    def __init__(self, logger: object, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Initialize the runner.

        Args:
            logger (object): Diagnostic logger
            clock (callable): Monotonic clock used for durations

        Returns:
            None
        """

        self.logger = logger
        self.clock = clock

    def run(self, argv: Sequence[str], output: AttemptOutput, budget: Optional[float] = None, attempt_number: int = 1) -> RunAttempt:
        """
        Run one attempt of the command.

        Blocks until the child exits or the budget elapses. Never
        raises for process failures, they are reported in the
        returned RunAttempt.

        Args:
            argv (list): Command tokens, argv[0] is the executable
            output (AttemptOutput): Destinations of the child output
            budget (float): Seconds the attempt may run, None for unbounded
            attempt_number (int): 1-based attempt counter

        Returns:
            RunAttempt: Outcome of the attempt
        """

        attempt = RunAttempt(attempt_number = attempt_number, started_at = datetime.now().astimezone())
        started = self.clock()

        try:
            proc = self._spawn(argv, output)

        except OSError as e:
            ## start failure is distinct from a nonzero exit
            attempt.error = e
            attempt.exit_code = EXIT_NOT_FOUND if isinstance(e, FileNotFoundError) else EXIT_CANNOT_EXECUTE
            attempt.duration = self.clock() - started
            self.logger.error({'status': 'start failed', 'attempt': attempt_number, 'cmd': argv[0], 'error': str(e)})
            return attempt

        self.logger.debug({'status': 'spawned', 'attempt': attempt_number, 'pid': proc.pid})
        pumps = self._start_pumps(proc, output)

        try:
            proc.wait(timeout = budget)

        except subprocess.TimeoutExpired:
            ## budget won the race
            attempt.was_killed_by_timeout = True
            self._kill(proc)
            proc.wait()

        self._join_pumps(pumps)
        attempt.duration = self.clock() - started
        attempt.exit_code = EXIT_KILLED if attempt.was_killed_by_timeout else proc.returncode
        return attempt

    def _spawn(self, argv: Sequence[str], output: AttemptOutput) -> subprocess.Popen:
        stream = None if output.inherit else subprocess.PIPE
        return subprocess.Popen(
            list(argv),
            stdin = subprocess.DEVNULL,
            stdout = stream,
            stderr = stream,
            bufsize = 0,
            ## own process group so the whole tree can be killed
            start_new_session = (os.name == 'posix'),
        )

    def _start_pumps(self, proc: subprocess.Popen, output: AttemptOutput) -> list:
        pumps = []
        for stream, writer, name in ((proc.stdout, output.stdout, 'stdout'), (proc.stderr, output.stderr, 'stderr')):
            if stream is None:
                continue

            thread = Thread(target = self._pump, args = (stream, writer, name), name = 'pump-%s-%s' % (proc.pid, name), daemon = True)
            thread.start()
            pumps.append((thread, stream))

        return pumps

    def _pump(self, stream, writer, name: str) -> None:
        """
        Copy raw chunks from a child pipe to the sink until EOF.

        Failing targets are dropped by the writer one by one. Once
        none is left the pipe is still drained, the child must never
        block on a full pipe.
        """

        reported = False
        try:
            for chunk in iter(lambda: stream.read(CHUNK_SIZE), b''):
                if writer.alive:
                    writer.write(chunk)

                elif not reported:
                    reported = True
                    self.logger.warning({'status': 'all output targets failed, discarding', 'stream': name})

        finally:
            stream.close()

    def _join_pumps(self, pumps: list) -> None:
        ## one shared grace period for all pumps of the attempt
        deadline = time.monotonic() + PUMP_JOIN_TIMEOUT
        for thread, stream in pumps:
            thread.join(max(deadline - time.monotonic(), 0.0))
            if thread.is_alive():
                ## a grandchild outside the process group still holds the pipe
                self.logger.warning({'status': 'output pump still running', 'thread': thread.name})

    def _kill(self, proc: subprocess.Popen) -> None:
        self.logger.debug({'status': 'killing', 'pid': proc.pid})
        try:
            if os.name == 'posix':
                os.killpg(proc.pid, signal.SIGKILL)

            else:
                proc.kill()

        except ProcessLookupError:
            ## exited between the timeout and the kill
            pass
