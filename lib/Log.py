"""
Logging Module

This module builds the diagnostic logger of the runner. The
diagnostic stream is owned by the runner and kept apart from the
job's own output: it goes to stderr and never into LOG_FILE.
"""

## version related
__author__ = "Kyle"
__version__ = "0.1.0"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import sys
import logging

## default logger name
LOGGER_NAME = 'cronrunner'

## record layout
LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s %(funcName)s %(message)s'

class Log(object):
    """
    Diagnostic logger factory.

    Attributes:
        logger (logging.Logger): Configured application logger
    """

    def __init__(self, config: dict, stream: object = None) -> None:
        """
        Initialize the logger.

        Args:
            config (dict): Runner config, reads config['log']['level'] and config['name']
            stream (object): Text stream for records, defaults to stderr

        Returns:
            None
        """

        self.name = config.get('name') or LOGGER_NAME
        self.level = config.get('log', {}).get('level', 'INFO')
        self.stream = stream or sys.stderr
        self.logger = self.init()

    def init(self) -> logging.Logger:
        """
        Create the logger and attach a stream handler.

        Calling it twice for the same name replaces the handler
        instead of duplicating records.

        Returns:
            logging.Logger: Configured logger
        """

        logger = logging.getLogger(self.name)
        logger.setLevel(self.level)

        ## drop handlers from a previous init
        for handler in list(logger.handlers):
            logger.removeHandler(handler)

        handler = logging.StreamHandler(self.stream)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
        return logger
