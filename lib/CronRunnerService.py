"""
Cron Runner Scheduler Service

This module implements the long-lived scheduler loop of the runner.
It registers the job executor with an APScheduler cron trigger and
keeps the process in the foreground until a termination signal
arrives.

Responsibilities:
- Initialize and configure APScheduler
- Register one firing callback per matching instant
- Forward APScheduler logs into the application logger
- Handle SIGTERM / SIGINT and shut down gracefully
"""

## version related
__author__ = "Kyle"
__version__ = "0.1.0"
__email__ = "kyle@hacking-linux.com"

## import build in pkgs
import signal
import logging
from threading import Event
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor

## import private pkgs
from CronSchedule import CronSchedule
from JobExecutor import JobExecutor

## id of the single scheduled job
JOB_ID = 'cronrunner'

class APSchedulerForwardHandler(logging.Handler):
    """
    Logging bridge handler for APScheduler.

    This handler forwards APScheduler log records to the
    application-level logger, preserving log level semantics.
    """

    def __init__(self, my_logger):
        """
        Initialize the forward logging handler.

        Args:
            my_logger (object): Application logger instance
        """

        super().__init__()

        ## application logger used for forwarding
        self.my_logger = my_logger

    def emit(self, record):
        """
        Emit a log record.

        Args:
            record (logging.LogRecord): Log record to emit

        Returns:
            None
        """

        try:
            msg = self.format(record)

            ## map APScheduler log levels to application logger
            if record.levelno >= logging.ERROR:
                self.my_logger.error({'apscheduler': msg})

            elif record.levelno >= logging.WARNING:
                self.my_logger.warning({'apscheduler': msg})

            else:
                self.my_logger.debug({'apscheduler': msg})

        except Exception:
            self.handleError(record)

class CronRunnerService(object):
    """
    Core scheduler service controller.

    This class encapsulates the lifecycle of an APScheduler
    instance driving a single job executor: initialization,
    blocking run loop and graceful shutdown. A stop halts new
    firings only; firings already running finish on their own.
    """

    def __init__(self, logger: object, executor: JobExecutor, schedule: CronSchedule, timezone: object = None, coalesce: bool = True, max_workers: int = 10, max_instances: int = 10, misfire_grace_time: int = 30) -> None:
        """
        Initialize the scheduler service.

        Args:
            logger (object): Application logger
            executor (JobExecutor): Firing callback owner
            schedule (CronSchedule): Parsed cron schedule
            timezone (object): Schedule time zone, None for local time
            coalesce (bool): Collapse missed firings into one
            max_workers (int): Maximum worker threads
            max_instances (int): Maximum concurrent firings, 1 disables overlap
            misfire_grace_time (int): Misfire grace time in seconds

        Returns:
            None
        """

        ## application logger
        self.logger = logger
        self.logger.info({'status': 'start'})

        self.executor = executor
        self.schedule = schedule

        ## scheduler configuration
        self.timezone = timezone
        self.coalesce = bool(coalesce)
        self.max_workers = max_workers
        self.max_instances = max_instances
        self.misfire_grace_time = misfire_grace_time

        ## internal runtime state
        self._scheduler = None
        self._running = False
        self._stop_event = Event()

        ## forward APScheduler logs into application logger
        self._setup_apscheduler_logging()

        ## initialize scheduler instance
        self.init()
        self.logger.info({'status': 'end'})

    def init(self) -> None:
        """
        Initialize the APScheduler instance.

        This method creates a BackgroundScheduler with the default
        in-memory job store and a thread pool executor, then
        registers the firing callback.

        Returns:
            None
        """

        scheduler_kwargs = {
            'executors': {
                ## thread pool used for firings
                'default': ThreadPoolExecutor(max_workers = self.max_workers),
            },
            'job_defaults': {
                ## collapse multiple pending executions into one
                'coalesce': self.coalesce,

                ## limit concurrent executions per job
                'max_instances': self.max_instances,

                ## allow late execution within grace period
                'misfire_grace_time': self.misfire_grace_time,
            },
        }
        if self.timezone is not None:
            scheduler_kwargs['timezone'] = self.timezone

        self._scheduler = BackgroundScheduler(**scheduler_kwargs)

        ## register firing callback
        self._scheduler.add_job(
            func = self.executor.run,
            trigger = self.schedule.trigger(self.timezone),
            kwargs = {'stop_event': self._stop_event},
            id = JOB_ID,
            name = self.executor.job.command_line,
            replace_existing = True,
        )

        self.logger.info({
            'schedule': self.schedule.expression,
            'timezone': self.schedule.location or (str(self.timezone) if self.timezone is not None else 'local'),
            'max_instances': self.max_instances,
        })

    def _setup_apscheduler_logging(self) -> None:
        """
        Redirect APScheduler internal logs into the application
        logging system.

        Returns:
            None
        """

        aps_logger = logging.getLogger('apscheduler')
        aps_logger.setLevel(logging.DEBUG)

        handler = APSchedulerForwardHandler(self.logger)
        handler.setFormatter(logging.Formatter('%(levelname)s %(name)s %(message)s'))

        ## replace a previous bridge, disable propagation to avoid duplicate logs
        for old in list(aps_logger.handlers):
            if isinstance(old, APSchedulerForwardHandler):
                aps_logger.removeHandler(old)

        aps_logger.addHandler(handler)
        aps_logger.propagate = False

    @property
    def running(self) -> bool:
        return self._running

    def next_fire_time(self) -> object:
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def start(self) -> None:
        """
        Start the scheduler service.

        Returns:
            None
        """

        self.logger.info({'status': 'start'})

        ## start APScheduler background thread
        self._scheduler.start()
        self._running = True

        self.logger.info({'status': 'cron runner started', 'next_run_time': str(self.next_fire_time())})

    def stop(self, wait: bool = True) -> None:
        """
        Stop the scheduler service.

        No new firing is triggered after this call. With wait set,
        the call blocks until in-flight firings have finished; they
        are never killed, but no further retry is started.

        Args:
            wait (bool): Wait for in-flight firings

        Returns:
            None
        """

        self.logger.info({'status': 'shutting down cron runner'})
        self._stop_event.set()
        try:
            if self._scheduler and self._scheduler.running:
                self._scheduler.shutdown(wait = wait)

            ## release a persistent log file handle
            sink = getattr(self.executor, 'sink', None)
            if sink is not None:
                sink.close()

        finally:
            ## ensure running flag is cleared
            self._running = False

        self.logger.info({'status': 'cron runner stopped'})

    def serve_forever(self) -> None:
        """
        Run the scheduler service main loop.

        This method starts the scheduler, installs signal handlers
        and blocks until a shutdown signal is received, then stops
        the scheduler.

        Returns:
            None
        """

        self.start()

        ## register signal handlers for graceful shutdown
        signal.signal(signal.SIGTERM, self._handle_exit)
        signal.signal(signal.SIGINT, self._handle_exit)

        ## main service loop
        while not self._stop_event.wait(1.0):
            pass

        self.stop()

    def _handle_exit(self, signum, frame) -> None:
        """
        Handle process termination signals.

        Args:
            signum (int): Signal number
            frame (object): Current stack frame

        Returns:
            None
        """

        self.logger.info({'status': 'received signal %s, exiting...' % (signum)})
        self._stop_event.set()
