import logging
import os
import sys
from pathlib import Path


def setup_logger(name="BehaveSec", log_file=None):
    """
    Sets up a logger with a console handler and an optional file handler.

    Args:
        name (str): Name of the logger.
        log_file (Path, optional): Path to the log file. Falls back to the
                                   BEHAVESEC_LOG_FILE environment variable;
                                   console only when neither is set.

    Returns:
        logging.Logger: Configured logger instance.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    # Prevent duplicate handlers if function is called multiple times
    if logger.hasHandlers():
        return logger

    # Formatter
    formatter = logging.Formatter(
        '%(asctime)s - [%(levelname)s] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console Handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File Handler
    if log_file is None:
        log_file = os.environ.get("BEHAVESEC_LOG_FILE")

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


# Create a default logger instance
logger = setup_logger()
