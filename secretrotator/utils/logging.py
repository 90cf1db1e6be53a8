"""Logging configuration for secret-rotator."""

import logging
import sys
from typing import Optional

HANDLER_NAME = "secret-rotator"
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "hvac")


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """
    Setup logging configuration for the CLI.

    Handlers installed by an earlier call are replaced, so repeated
    invocations in one process do not duplicate output. Secret values are
    never passed to loggers; only paths and operations are.

    Args:
        verbose: Enable verbose/debug logging
        log_file: Optional log file path
    """
    level = logging.DEBUG if verbose else logging.INFO

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if handler.get_name() == HANDLER_NAME:
            root_logger.removeHandler(handler)
            handler.close()

    # Diagnostics go to stderr so command output on stdout stays parseable
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.set_name(HANDLER_NAME)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_logger.setLevel(logging.DEBUG if log_file else level)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.set_name(HANDLER_NAME)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Transport libraries log request details at DEBUG
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
