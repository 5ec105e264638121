import logging
from typing import Optional

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOGGER_NAME = "spotify_library_sync"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

_logger = logging.getLogger(LOGGER_NAME)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure console (and optional file) logging for the app and the spotify_library package."""
    numeric_level = logging.getLevelName(str(level or "INFO").upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for name in (LOGGER_NAME, "spotify_library"):
        target = logging.getLogger(name)
        target.setLevel(numeric_level)
        for handler in list(target.handlers):
            target.removeHandler(handler)
        for handler in handlers:
            handler.setFormatter(formatter)
            target.addHandler(handler)
        target.propagate = False

    return _logger


def log_debug(message: str) -> None:
    _logger.debug(message)


def log_info(message: str) -> None:
    _logger.info(message)


def log_success(message: str) -> None:
    _logger.log(SUCCESS, message)


def log_warning(message: str) -> None:
    _logger.warning(message)


def log_error(message: str) -> None:
    _logger.error(message)
