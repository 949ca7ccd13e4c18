"""
Logging setup for the sheetconvert service.

The root logger is configured once, on first use, from environment variables:

- ``SHEETCONVERT_LOG_LEVEL`` (or ``LOG_LEVEL``): level name, INFO by default
  and WARNING while running under pytest
- ``LOG_FORMAT``: ``standard``, ``dev`` or ``json``
- ``LOG_FILE``: also write to this file, rotated at 10MB
"""

import functools
import inspect
import logging
import logging.handlers
import os
import sys
import time
from pathlib import Path
from typing import Optional

LOG_FORMATS = {
    'standard': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    'dev': '%(asctime)s [%(levelname)8s] %(name)s:%(lineno)d - %(message)s',
    'json': '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
}

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def level_from_env() -> int:
    level_name = os.getenv('SHEETCONVERT_LOG_LEVEL', os.getenv('LOG_LEVEL'))
    if level_name:
        level = logging.getLevelName(level_name.strip().upper())
        return level if isinstance(level, int) else logging.INFO
    if 'pytest' in sys.modules:
        return logging.WARNING
    return logging.INFO


def format_from_env() -> str:
    return LOG_FORMATS.get(os.getenv('LOG_FORMAT', 'standard').lower(), LOG_FORMATS['standard'])


class LoggerFactory:
    """Configures the root logger once and hands out named loggers."""

    _configured = False

    @classmethod
    def configure_logging(cls, level: Optional[int] = None, log_file: Optional[str] = None) -> None:
        if cls._configured:
            return

        level = level or level_from_env()
        formatter = logging.Formatter(format_from_env())

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        handlers = [logging.StreamHandler(sys.stdout)]
        log_file = log_file or os.getenv('LOG_FILE')
        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.handlers.RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
            ))
        for handler in handlers:
            handler.setFormatter(formatter)
            root_logger.addHandler(handler)

        cls._configured = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        cls.configure_logging()
        return logging.getLogger(name)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger, named after the calling module unless ``name`` is given."""
    if not name:
        frame = inspect.currentframe()
        try:
            name = frame.f_back.f_globals.get('__name__', 'sheetconvert')
        finally:
            del frame
    return LoggerFactory.get_logger(name)


def log_performance(logger: logging.Logger, level: int = logging.INFO):
    """Decorator to log how long a coroutine function takes."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            start = time.perf_counter()
            logger.log(level, f"Starting {func.__qualname__}")
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration = time.perf_counter() - start
                logger.log(level, f"Failed {func.__qualname__} after {duration:.3f}s: {e}")
                raise
            duration = time.perf_counter() - start
            logger.log(level, f"Completed {func.__qualname__} in {duration:.3f}s")
            return result
        return wrapper
    return decorator
