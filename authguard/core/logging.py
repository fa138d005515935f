import logging
import sys

from authguard.core.config import settings

# between INFO and WARNING
SECURITY = 25
logging.addLevelName(SECURITY, "SECURITY")


class ConsoleHandler(logging.StreamHandler):
    """Writes to sys.stdout or sys.stderr as they are at emit time."""

    def __init__(self, stream_name: str):
        logging.Handler.__init__(self)
        self.stream_name = stream_name

    @property
    def stream(self):
        return getattr(sys, self.stream_name)


def _configure(
    logger: logging.Logger, handler: logging.Handler, max_level: int
) -> logging.Logger:
    """
    Attach ``handler`` once. LOG_LEVEL can lower the threshold, but never
    raise it above ``max_level``, so a channel's own records are always written.
    """
    if logger.handlers:
        return logger

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(min(level, max_level))

    # records are already serialized JSON
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)

    return logger


def get_security_logger() -> logging.Logger:
    """Info channel: security events, warnings. Writes to stdout."""
    return _configure(logging.getLogger("security"), ConsoleHandler("stdout"), SECURITY)


def get_error_logger() -> logging.Logger:
    """Error channel. Writes to stderr and does not bubble up to "security"."""
    logger = logging.getLogger("security.errors")
    logger.propagate = False
    return _configure(logger, ConsoleHandler("stderr"), logging.ERROR)
