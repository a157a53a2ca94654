import logging

from duet_service.core.config import load_settings

LOGGER_NAME = "duet"
_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> logging.Logger:
    """Configure the shared service logger once and return it."""
    log = logging.getLogger(LOGGER_NAME)
    if level is None:
        level = load_settings().get("logging", {}).get("level", "INFO")
    log.setLevel(str(level).upper())
    if not log.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        log.addHandler(handler)
    return log


logger = configure_logging()
