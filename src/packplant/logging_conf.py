from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Server/framework noise stays at WARNING whatever the app level is.
THIRD_PARTY_LEVELS = {
    "uvicorn.access": logging.WARNING,
    "watchfiles": logging.WARNING,
    "nicegui": logging.WARNING,
}

# Cache hits/misses and per-keystroke edit traces are DEBUG; keep them out of an app-wide DEBUG run
# unless asked for with --log-package.
PACKAGE_LEVELS = {
    "packplant.cache": logging.INFO,
    "packplant.editing": logging.INFO,
}


def parse_level(level: str | int | None, default: int = logging.INFO) -> int:
    if isinstance(level, int):
        return level
    numeric = getattr(logging, str(level or "").strip().upper(), None)
    if not isinstance(numeric, int):
        logging.getLogger(__name__).warning("Unknown log level %r, using %s", level, logging.getLevelName(default))
        return default
    return numeric


def parse_package_levels(specs: list[str] | None) -> dict[str, int]:
    """`["packplant.cache=DEBUG", ...]` -> {"packplant.cache": 10, ...}."""
    levels: dict[str, int] = {}
    for spec in specs or []:
        name, sep, level = spec.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Nivel de log inválido: {spec!r} (usa paquete=NIVEL)")
        levels[name.strip()] = parse_level(level)
    return levels


def configure_logging(level: str = "INFO", *, package_levels: dict[str, int] | None = None) -> dict[str, int]:
    """Route every logger to stdout and apply per-package levels.

    Returns the effective package levels (defaults overlaid with `package_levels`).
    """
    numeric_level = parse_level(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    # Reloads call this again.
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name, lvl in THIRD_PARTY_LEVELS.items():
        logging.getLogger(name).setLevel(lvl)

    effective = {name: max(lvl, numeric_level) for name, lvl in PACKAGE_LEVELS.items()}
    effective.update(package_levels or {})
    for name, lvl in effective.items():
        logging.getLogger(name).setLevel(lvl)
    return effective
