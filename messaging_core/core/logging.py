from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Library loggers that are noisy below these levels: (level when debugging, level otherwise).
_LIBRARY_LEVELS = {
    "uvicorn.error": (logging.DEBUG, logging.INFO),
    "uvicorn.access": (logging.DEBUG, logging.INFO),
    "sqlalchemy.engine": (logging.INFO, logging.WARNING),
    "httpx": (logging.INFO, logging.WARNING),
    "httpcore": (logging.WARNING, logging.WARNING),
    "websockets": (logging.INFO, logging.WARNING),
}


def configure_logging(*, debug: bool, level: str | None = None) -> None:
    root_level = logging.DEBUG if debug else logging.INFO
    if level:
        root_level = logging.getLevelName(level.upper())
        if not isinstance(root_level, int):
            raise ValueError(f"Unknown log level: {level}")
    logging.basicConfig(level=root_level, format=LOG_FORMAT, force=True)

    for name, (debug_level, normal_level) in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(debug_level if debug else normal_level)

    logging.getLogger(__name__).info(
        "Logging configured level=%s debug=%s",
        logging.getLevelName(root_level),
        debug,
    )
