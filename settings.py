# settings.py
# -----------------------------------------------------------------------------
# Run configuration (config.toml + CLI overrides) and the per-run context.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from pgn_headers import KEY_MODE_ECO, KEY_MODES

DEFAULT_CONFIG_PATH = Path("config.toml")
DEFAULT_LIST_URL = "https://database.lichess.org/standard/list.txt"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Config:
    bucket_size: int = 200          # Elo bucket width; 0 puts everyone in bucket 0
    batch_size: int = 1000          # games per parallel batch
    worker_count: Optional[int] = None  # None = os.cpu_count()
    list_url: str = DEFAULT_LIST_URL
    key_mode: str = KEY_MODE_ECO    # "eco" (family ranges) or "opening" (Opening tag)

    def resolved_workers(self) -> int:
        if self.worker_count is not None and self.worker_count > 0:
            return self.worker_count
        return max(1, os.cpu_count() or 1)

    def with_overrides(self, **overrides: Any) -> Config:
        """Return a copy with every non-None override applied and validated."""
        given = {k: v for k, v in overrides.items() if v is not None}
        return validate(replace(self, **given))


def validate(cfg: Config) -> Config:
    if cfg.key_mode not in KEY_MODES:
        raise ValueError(f"Invalid key_mode {cfg.key_mode!r}; expected one of {KEY_MODES}.")
    changes: Dict[str, Any] = {}
    if cfg.bucket_size < 0:
        changes["bucket_size"] = 0
    if cfg.batch_size < 1:
        changes["batch_size"] = 1
    if cfg.worker_count is not None and cfg.worker_count < 1:
        changes["worker_count"] = None
    return replace(cfg, **changes) if changes else cfg


def load_config(path: Optional[Path] = None) -> Config:
    """Load config.toml; a missing or unreadable file gives the defaults."""
    p = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not p.exists():
        return Config()
    try:
        with p.open("rb") as fh:
            raw = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Could not read %s (%s); using defaults.", p, e)
        return Config()

    known = {f.name for f in fields(Config)}
    values = {k: v for k, v in raw.items() if k in known}
    bad = [k for k, v in values.items() if not _type_ok(k, v)]
    if bad:
        logger.warning("Invalid config in %s (wrong type for %s); using defaults.", p, ", ".join(sorted(bad)))
        return Config()
    try:
        return validate(Config(**values))
    except TypeError as e:
        logger.warning("Invalid config in %s (%s); using defaults.", p, e)
        return Config()


def _type_ok(name: str, value: Any) -> bool:
    if name in ("list_url", "key_mode"):
        return isinstance(value, str)
    if name == "worker_count" and value is None:
        return True
    # bool is an int subclass.
    return isinstance(value, int) and not isinstance(value, bool)


def database_url() -> str:
    return os.environ.get("DATABASE_URL", "")


@dataclass(frozen=True)
class RunContext:
    """Per-run switches handed to components that emit diagnostics."""

    verbose: bool = False

    def vlog(self, msg: str, *args: Any) -> None:
        if self.verbose:
            logger.info(msg, *args)
