from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from packplant.data.repository import Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    db_path: Path
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # Seconds. Full pallet dataset and the derived summary/analytics queries.
    pallet_cache_ttl: float = 300.0
    summary_cache_ttl: float = 120.0

    # Seconds. Weighing-table edits.
    edit_debounce: float = 0.5
    edit_settle_delay: float = 3.0


def default_db_path() -> Path:
    # Fixed, repo-local database location (keeps paths stable across machines).
    return Path("db") / "packplant.db"


def _read_seconds(
    repo: Repository, key: str, fallback: float, *, scale: float = 1.0, allow_zero: bool = True
) -> float:
    raw = repo.get_config(key=key, default=None)
    if raw is None or str(raw).strip() == "":
        return fallback
    try:
        value = float(str(raw).strip()) / scale
    except ValueError:
        logger.warning("Ignoring invalid config %s=%r", key, raw)
        return fallback
    if value < 0 or (value == 0 and not allow_zero):
        logger.warning("Ignoring out-of-range config %s=%r", key, raw)
        return fallback
    return value


def load_settings(repo: Repository, base: Settings) -> Settings:
    """Apply the app_config overrides on top of the command-line settings."""
    return replace(
        base,
        pallet_cache_ttl=_read_seconds(repo, "cache_ttl_pallets_seconds", base.pallet_cache_ttl, allow_zero=False),
        summary_cache_ttl=_read_seconds(repo, "cache_ttl_summary_seconds", base.summary_cache_ttl, allow_zero=False),
        edit_debounce=_read_seconds(repo, "edit_debounce_ms", base.edit_debounce, scale=1000.0),
        edit_settle_delay=_read_seconds(repo, "edit_settle_ms", base.edit_settle_delay, scale=1000.0),
    )
