import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from .config import Config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_handlers: List[logging.Handler] = []
_configured = False


def _level(name: str) -> int:
    return getattr(logging, (name or "INFO").upper(), logging.INFO)


def setup_logging(config: Optional[Config] = None, force: bool = False):
    """
    Attach stdout and/or rotating file handlers to the root logger.

    Runs once per process; ``force`` replaces the handlers installed by the
    previous call. Without a config the LOG_* environment variables apply.
    """
    global _configured
    if _configured and not force:
        return

    config = config or Config.from_env()
    level = _level(config.log_level)
    root = logging.getLogger()
    for handler in _handlers:
        root.removeHandler(handler)
        handler.close()
    _handlers.clear()
    root.setLevel(level)

    file_error = None
    if config.log_to_stdout:
        _handlers.append(logging.StreamHandler(sys.stdout))
    if config.log_to_file:
        try:
            log_dir = os.path.dirname(config.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            _handlers.append(RotatingFileHandler(
                config.log_file,
                maxBytes=config.log_max_bytes,
                backupCount=config.log_backups,
            ))
        except OSError as e:
            file_error = e

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in _handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if file_error is not None:
        root.warning("Failed to initialize file logging: %s", file_error)
    _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)
