import logging
from pathlib import Path

from wishsync.core.config import Settings, settings as default_settings


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
# Per-statement and per-connection loggers stay at WARNING or above.
_NOISY_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "sqlalchemy.pool")


def _file_handler(log_file: str, root: logging.Logger) -> logging.Handler | None:
    log_path = Path(log_file).resolve()
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == str(log_path):
            return None
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(log_path, encoding="utf-8")


def configure_logging(settings: Settings | None = None) -> logging.Logger:
    """Attach handlers to the root logger once and return the ``wishsync`` logger."""
    settings = settings or default_settings
    level = logging.getLevelName((settings.log_level or "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    handlers: list[logging.Handler] = []
    if not root.handlers:
        handlers.append(logging.StreamHandler())
    if settings.log_file:
        file_handler = _file_handler(settings.log_file, root)
        if file_handler is not None:
            handlers.append(file_handler)

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger = logging.getLogger("wishsync")
    logger.setLevel(level)
    return logger
