import logging
import sys
from typing import Optional

from ppcup.config import Config

FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def level_for(name: str) -> int:
    """
    Level for logger `name`. The longest LOG_LEVELS entry that equals the
    name or is a dotted prefix of it wins ("ppcup" covers "ppcup.pool");
    without one, DEBUG when Config.DEBUG else INFO.
    """
    best: Optional[str] = None
    for prefix in Config.get_log_levels():
        if name == prefix or name.startswith(prefix + "."):
            if best is None or len(prefix) > len(best):
                best = prefix
    default = logging.DEBUG if Config.DEBUG else logging.INFO
    if best is None:
        return default
    level = logging.getLevelName(Config.get_log_levels()[best])
    # getLevelName hands back a string for names it does not know
    return level if isinstance(level, int) else default


def setup_logger(name: str) -> logging.Logger:
    """Logger with one stdout handler; calling it again for a name is a no-op."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = level_for(name)
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(handler)
    return logger
