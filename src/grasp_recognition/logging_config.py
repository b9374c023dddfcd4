"""
Logging configuration for the recognition entry point.

Library modules only call logging.getLogger(__name__); handlers are attached
here once at process start.
"""

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Marks handlers attached by setup_logging so a repeated call replaces them
_HANDLER_ATTR = "_grasp_recognition_handler"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = None
) -> logging.Logger:
    """
    Configure the root logger with a stderr handler and an optional file handler.

    Args:
        level: Minimum log level
        log_file: Optional path of a log file (parent directories are created)

    Returns:
        The configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_ATTR, False):
            root_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(formatter)
    setattr(stderr_handler, _HANDLER_ATTR, True)
    root_logger.addHandler(stderr_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_ATTR, True)
        root_logger.addHandler(file_handler)

    return root_logger
