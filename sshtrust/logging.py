"""Logging configuration for sshtrust."""

import logging
import logging.handlers
import sys
from typing import List, Optional

from .config import Config


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Libraries whose INFO output drowns out the per-phase lines
QUIET_LOGGERS = ("paramiko",)


class TrustLogger:
    """
    Logger for a provisioning run.

    Every module logs through a child of the ``sshtrust`` logger, so the
    handlers attached here also carry executor and scanner output.
    """

    def __init__(self, name: str = "sshtrust", log_file: Optional[str] = None):
        self.logger = logging.getLogger(name)
        # None falls back to the configured file, "" keeps logging on stdout only
        self.log_file = Config.LOG_FILE if log_file is None else log_file
        self.log_level = logging.getLevelName(Config.LOG_LEVEL.upper())
        if not isinstance(self.log_level, int):
            self.log_level = logging.INFO

        self._configure()

    def _configure(self):
        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
        handlers, file_error = self._handlers()

        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        self.logger.setLevel(self.log_level)
        for handler in handlers:
            handler.setFormatter(formatter)
            handler.setLevel(self.log_level)
            self.logger.addHandler(handler)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        if file_error is not None:
            self.logger.warning(
                f"Logging to stdout only, cannot open {self.log_file}: {file_error}"
            )

    def _handlers(self):
        """Build the stdout handler and, when a log file is set, a rotating one."""
        handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        if not self.log_file:
            return handlers, None

        try:
            handlers.append(logging.handlers.RotatingFileHandler(
                self.log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS
            ))
        except OSError as e:
            return handlers, e
        return handlers, None

    def get_logger(self) -> logging.Logger:
        """Get the configured logger."""
        return self.logger


def setup_logging(log_file: Optional[str] = None) -> logging.Logger:
    """Setup logging for the sshtrust application."""
    trust_logger = TrustLogger(log_file=log_file)
    return trust_logger.get_logger()


def log_phase_start(logger: logging.Logger, phase: str, host: str, detail: str):
    """Log the start of a provisioning phase."""
    logger.info(f"Phase {phase.upper()} started - Host: {host}, {detail}")


def log_phase_success(logger: logging.Logger, phase: str, host: str):
    """Log a completed provisioning phase."""
    logger.info(f"Phase {phase.upper()} SUCCESS - Host: {host}")


def log_phase_failure(logger: logging.Logger, phase: str, host: str, error: str):
    """Log a failed provisioning phase."""
    logger.error(f"Phase {phase.upper()} FAILED - Host: {host}, Error: {error}")
