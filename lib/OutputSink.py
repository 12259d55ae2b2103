"""
Output Sink Module

This module decides where the output of one child process attempt
goes. Without a log file the child writes straight to the standard
streams of this process. With a log file both streams are tee'd to
the standard streams and to the file, and the attempt is bracketed
by RUN START / RUN END marker lines.

Responsibilities:
- Resolve stdout/stderr destinations for one attempt
- Open the shared log file in append mode (per attempt or once)
- Write paired run-boundary markers
- Fall back to standard streams when the log file cannot be opened
"""

## version related
__author__ = "Kyle"
__version__ = "0.1.0"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import sys
from datetime import datetime
from threading import Lock
from typing import BinaryIO, Callable, List, Optional

## import private pkgs
from JobConfig import LOG_FILE_PER_ATTEMPT, LOG_FILE_PERSISTENT

def timestamp() -> str:
    """
    Return the current local time as an RFC 3339 string.
    """

    return datetime.now().astimezone().isoformat(timespec = 'seconds')

def format_duration(seconds: float) -> str:
    return '%.3fs' % (max(seconds, 0.0))

def start_marker() -> bytes:
    return ('===== RUN START %s =====\n' % (timestamp())).encode('utf-8')

def end_marker(exit_code: int, duration: float, killed: bool = False) -> bytes:
    exit_value = 'timeout' if killed else str(exit_code)
    line = '===== RUN END %s exit=%s duration=%s =====\n\n' % (timestamp(), exit_value, format_duration(duration))
    return line.encode('utf-8')

class SharedLogFile(object):
    """
    Append-mode log file handle shared by every attempt.

    Used by the persistent tee mode. Writes are serialized with a
    lock so concurrent firings never split a single chunk.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = Lock()
        self._fh = open(path, 'ab', buffering = 0)

    def write(self, data: bytes) -> int:
        with self._lock:
            return self._fh.write(data)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        with self._lock:
            self._fh.close()

    @property
    def closed(self) -> bool:
        return self._fh.closed

class TeeWriter(object):
    """
    Byte stream duplicator.

    Every chunk is written unchanged, in order, to all targets and
    flushed immediately so readers see it while the child runs. A
    target that fails is dropped on its own; the others keep
    receiving every byte.
    """

    def __init__(self, logger: object, targets: List[BinaryIO], name: str = 'stdout', on_drop: Optional[Callable] = None) -> None:
        self.logger = logger
        self.targets = targets
        self.name = name
        self.on_drop = on_drop
        self._lock = Lock()

    @property
    def alive(self) -> bool:
        return len(self.targets) > 0

    def write(self, data: bytes) -> None:
        for target in list(self.targets):
            try:
                target.write(data)
                target.flush()

            except (OSError, ValueError) as e:
                self.drop(target, e)

    def drop(self, target: BinaryIO, error: Optional[BaseException] = None) -> bool:
        """
        Stop writing to one target.

        Args:
            target (BinaryIO): Target to remove
            error (Exception): Write error that caused the drop, logged once

        Returns:
            bool: True if the target was still attached
        """

        with self._lock:
            if not any(t is target for t in self.targets):
                return False

            self.targets = [t for t in self.targets if t is not target]

        if error is not None:
            self.logger.warning({'status': 'output target failed', 'stream': self.name, 'error': str(error)})

        if self.on_drop is not None:
            self.on_drop(target)

        return True

class AttemptOutput(object):
    """
    Output destinations of one attempt.

    Used as a context manager: entering writes the start marker,
    finish() writes the end marker. If the block is left without
    finish() the end marker is still written so markers stay paired.

    Log file trouble never stops the attempt: a failing log file is
    detached from both streams and the child keeps writing to the
    standard streams.
    """

    def __init__(self, logger: object, stdout: List[BinaryIO], stderr: List[BinaryIO], inherit: bool, log_file: Optional[BinaryIO], owns_log_file: bool) -> None:
        self.logger = logger
        self.stdout = TeeWriter(logger, stdout, 'stdout', on_drop = self._drop_log_file)
        self.stderr = TeeWriter(logger, stderr, 'stderr', on_drop = self._drop_log_file)
        self.log_file = log_file
        self.owns_log_file = owns_log_file
        self.finished = False
        self._lock = Lock()

        ## child can write straight to our own fds
        self.inherit = inherit

    def __enter__(self) -> 'AttemptOutput':
        if self.log_file is not None:
            try:
                self.log_file.write(start_marker())

            except (OSError, ValueError) as e:
                self.logger.warning({'status': 'log file write failed, continuing without it', 'error': str(e)})
                self._drop_log_file(self.log_file)

        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.finished:
            self.finish(-1, 0.0)

    def _drop_log_file(self, target: BinaryIO) -> None:
        with self._lock:
            if target is None or target is not self.log_file:
                return

            self.log_file = None

        self.stdout.drop(target)
        self.stderr.drop(target)
        if self.owns_log_file:
            self._close(target)

    def _close(self, log_file: BinaryIO) -> None:
        try:
            log_file.close()

        except OSError as e:
            self.logger.warning({'status': 'log file close failed', 'error': str(e)})

    def finish(self, exit_code: int, duration: float, killed: bool = False) -> None:
        """
        Write the end marker and release the log file.

        Args:
            exit_code (int): Exit code of the attempt
            duration (float): Attempt duration in seconds
            killed (bool): Whether the attempt was killed by the deadline

        Returns:
            None
        """

        if self.finished:
            return

        self.finished = True
        with self._lock:
            log_file = self.log_file

        if log_file is None:
            return

        try:
            log_file.write(end_marker(exit_code, duration, killed))

        except (OSError, ValueError) as e:
            self.logger.warning({'status': 'log file write failed', 'error': str(e)})

        finally:
            if self.owns_log_file:
                self._close(log_file)

class OutputSink(object):
    """
    Factory of per-attempt output destinations.

    Args:
        logger (object): Diagnostic logger, never the job output
        log_path (str): Optional log file receiving the tee'd output
        mode (str): "attempt" or "persistent" log file handling
        stdout (BinaryIO): Binary stdout target, defaults to this process stdout
        stderr (BinaryIO): Binary stderr target, defaults to this process stderr
    """

    def __init__(self, logger: object, log_path: Optional[str] = None, mode: str = LOG_FILE_PER_ATTEMPT, stdout: Optional[BinaryIO] = None, stderr: Optional[BinaryIO] = None) -> None:
        if mode not in (LOG_FILE_PER_ATTEMPT, LOG_FILE_PERSISTENT):
            raise ValueError('unknown log file mode: %s' % (mode))

        self.logger = logger
        self.log_path = log_path
        self.mode = mode
        self._stdout = stdout
        self._stderr = stderr
        self._shared = None
        self._shared_lock = Lock()

    def _std_targets(self) -> tuple:
        stdout = self._stdout if self._stdout is not None else sys.stdout.buffer
        stderr = self._stderr if self._stderr is not None else sys.stderr.buffer
        return stdout, stderr

    def _open_log_file(self) -> tuple:
        """
        Open the log file according to the configured mode.

        Returns:
            tuple: (file object or None, whether the attempt owns it)
        """

        try:
            if self.mode == LOG_FILE_PERSISTENT:
                with self._shared_lock:
                    if self._shared is None or self._shared.closed:
                        self._shared = SharedLogFile(self.log_path)

                    return self._shared, False

            return open(self.log_path, 'ab', buffering = 0), True

        except OSError as e:
            ## not fatal, the attempt runs with standard streams only
            self.logger.warning({'status': 'log file open failed', 'log_path': self.log_path, 'error': str(e)})
            return None, False

    def open_attempt(self) -> AttemptOutput:
        """
        Resolve the output destinations of one attempt.

        Returns:
            AttemptOutput: Context manager holding the destinations
        """

        log_file, owns = (None, False)
        if self.log_path:
            log_file, owns = self._open_log_file()

        if log_file is None and self._stdout is None and self._stderr is None:
            return AttemptOutput(self.logger, [], [], True, None, False)

        stdout, stderr = self._std_targets()
        if log_file is None:
            return AttemptOutput(self.logger, [stdout], [stderr], False, None, False)

        ## flush our own buffered text first so ordering on the terminal holds
        sys.stdout.flush()
        sys.stderr.flush()
        return AttemptOutput(self.logger, [stdout, log_file], [stderr, log_file], False, log_file, owns)

    def close(self) -> None:
        with self._shared_lock:
            if self._shared is not None and not self._shared.closed:
                self._shared.close()

            self._shared = None
