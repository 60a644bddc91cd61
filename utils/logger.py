# utils/logger.py
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Iterable, List, Optional, Union

_DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
_DEFAULT_FILE = os.getenv("LOG_FILE", "logs/paper_gate.log")
_DEFAULT_MAX_MB = int(os.getenv("LOG_MAX_MB", "5"))
_DEFAULT_BACKUPS = int(os.getenv("LOG_BACKUPS", "5"))

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# module-level loggers (``logging.getLogger(__name__)``) live under these
PACKAGE_LOGGERS = ("core", "models", "modules", "utils")


def _as_level(level: Union[str, int]) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def build_handlers(level: int,
                   log_file: Optional[str],
                   to_console: bool) -> List[logging.Handler]:
    """Rotating file and/or console handler sharing one formatter."""
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: List[logging.Handler] = []

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(RotatingFileHandler(
            log_file,
            maxBytes=_DEFAULT_MAX_MB * 1024 * 1024,
            backupCount=_DEFAULT_BACKUPS,
            encoding="utf-8",
        ))
    if to_console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
    return handlers


def setup_logger(name: str,
                 level: Union[str, int] = _DEFAULT_LEVEL,
                 log_file: Optional[str] = _DEFAULT_FILE,
                 to_console: bool = True,
                 capture: Iterable[str] = PACKAGE_LOGGERS) -> logging.Logger:
    """
    Configure the application logger and route the package loggers to it.

    The same handlers are attached to ``name`` and to every logger in
    ``capture`` that has none yet, so ledger, controller and bus lines end
    up in the same file and console as the engine's. Re-using a configured
    name returns it untouched.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = _as_level(level)
    handlers = build_handlers(level, log_file, to_console)

    for target in [logger] + [logging.getLogger(n) for n in capture if n != name]:
        if target is not logger and target.handlers:
            continue
        target.setLevel(level)
        for handler in handlers:
            target.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return logger


def release_logger(name: str, capture: Iterable[str] = PACKAGE_LOGGERS) -> None:
    """Detach and close whatever ``setup_logger`` attached."""
    owned = set(logging.getLogger(name).handlers)
    for target in [logging.getLogger(name)] + [logging.getLogger(n) for n in capture]:
        for handler in list(target.handlers):
            if handler in owned:
                target.removeHandler(handler)
    for handler in owned:
        handler.close()
