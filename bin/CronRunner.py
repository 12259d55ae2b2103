"""
Cron Runner Entry Point

This module provides the main entry point of the cron runner, the
foreground process of a container that runs one command on a cron
schedule. It is responsible for:

- Loading configuration from the environment
- Initializing logging
- Building the execution engine
- Starting the CronRunnerService runtime
"""

## version related
__author__ = "Kyle"
__version__ = "0.1.0"
__email__ = "kyle@hacking-linux.com"

## import build in pkgs
import re
import os
import sys

## Resolve project root directory
workpath = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))

## Extend Python module search path for project libraries
sys.path.append("%s/lib" % (workpath))

## import private pkgs
from Log import Log
from Config import Config, ConfigError
from JobExecutor import JobExecutor
from CronRunnerService import CronRunnerService

class CronRunner(object):
    """
    Core cron runner controller.

    Lifecycle:
        1. Load configuration
        2. Initialize logging
        3. Build the job executor
        4. Start CronRunnerService
    """

    def __init__(self, environ: dict = None) -> None:
        """
        Initialize the cron runner runtime environment.

        Args:
            environ (dict): Environment mapping, defaults to os.environ

        Raises:
            ConfigError: The environment is incomplete or invalid
        """

        ## set private values
        self.configObj = Config(environ)
        self.config = self.configObj.config
        self.config['pid'] = os.getpid()
        self.config['pname'] = os.path.basename(__file__)
        self.config['name'] = re.sub(r'\..*$', '', self.config['pname']).lower()

        ## logger init
        self.loggerObj = Log(self.config)
        self.logger = self.loggerObj.logger

        ## debug prt
        self.logger.info({'status': 'starting cron runner', 'schedule': self.config['cron']['expression']})
        self.logger.info({'cmd': self.config['job']['command']})
        if self.configObj.job.kill_after:
            self.logger.info({'timeout_min': self.config['job']['kill_after_min']})
        self.logger.debug({'restart_on_failure': self.configObj.job.restart_on_failure, 'restart_mode': self.configObj.job.restart_mode})
        self.logger.debug({'log_file': self.configObj.job.log_path, 'log_file_mode': self.configObj.job.log_file_mode})

        self.executor = JobExecutor(self.logger, self.configObj.job)

    def run(self) -> bool:
        """
        Start the cron runner service in blocking mode.

        Returns:
            bool: True once the service has stopped
        """

        cron = self.config['cron']
        svcObj = CronRunnerService(self.logger,
                                   self.executor,
                                   self.configObj.schedule,
                                   timezone = cron['timezone'],
                                   coalesce = cron['coalesce'],
                                   max_workers = cron['max_workers'],
                                   max_instances = cron['max_instances'],
                                   misfire_grace_time = cron['misfire_grace_time'],
                                   )

        ## block until SIGTERM / SIGINT
        svcObj.serve_forever()
        return True

def main() -> None:
    """
    Application entry point.

    Configuration errors are fatal: they are reported on stderr
    and the process exits with status 1 before anything is scheduled.
    """

    try:
        runnerObj = CronRunner()

    except ConfigError as e:
        sys.stderr.write('cronrunner: %s\n' % (e))
        sys.exit(1)

    runnerObj.run()

if __name__ == "__main__":
    main()
