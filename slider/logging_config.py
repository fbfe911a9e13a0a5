from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_NOISY_LOGGERS = ("github", "urllib3")


def _resolve_level(level: str | int) -> tuple[int, bool]:
    if isinstance(level, int):
        return level, True
    resolved = logging.getLevelName(level.strip().upper())
    if isinstance(resolved, int):
        return resolved, True
    return logging.INFO, False


def configure_logging(level: str | int = "INFO", *, force: bool = False) -> None:
    resolved, known = _resolve_level(level)
    logging.basicConfig(level=resolved, format=LOG_FORMAT, force=force)
    if not known:
        logging.getLogger(__name__).warning("Unknown log level %r; using INFO", level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def ensure_logging_configured() -> None:
    if not logging.getLogger().handlers:
        configure_logging()
