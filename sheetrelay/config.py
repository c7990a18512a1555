"""
Runtime settings read from the environment.

Defaults mirror the production sheet layout: configuration rows live in
'COSTDATA_DB'!C2:F of the control spreadsheet and status rows go to
'S_LOG'!A2:B of each destination.
"""

import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import List, Mapping, Optional

from .status import DEFAULT_LOG_RANGE

PER_JOB = "per_job"
LAST_ROW = "last_row"
DESTINATION_POLICIES = (PER_JOB, LAST_ROW)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

ENV_PREFIX = "SHEETRELAY_"


class ConfigError(ValueError):
    """Invalid or missing runtime configuration."""


@dataclass
class Settings:
    config_table_id: str = ""
    config_range: str = "'COSTDATA_DB'!C2:F"
    log_range: str = DEFAULT_LOG_RANGE
    batch_size: int = 10
    rate_limit_delay: float = 0.1
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 10.0
    chunk_size: int = 3000
    chunk_pause: float = 1.0
    destination_policy: str = PER_JOB
    pad_width: Optional[int] = None
    filter_date_column: Optional[int] = None
    filter_since: Optional[date] = None
    retry_all_errors: bool = False
    access_token: Optional[str] = None
    log_level: str = "INFO"
    log_dir: Path = Path("logs")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from SHEETRELAY_* variables (and GOOGLE_ACCESS_TOKEN).

        Raises:
            ConfigError: If a variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value.strip() if value is not None and value.strip() else None

        def as_int(name: str, default: Optional[int]) -> Optional[int]:
            raw = get(name)
            if raw is None:
                return default
            try:
                return int(raw)
            except ValueError:
                raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")

        def as_float(name: str, default: float) -> float:
            raw = get(name)
            if raw is None:
                return default
            try:
                return float(raw)
            except ValueError:
                raise ConfigError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}")

        since_raw = get("FILTER_SINCE")
        try:
            since = date.fromisoformat(since_raw) if since_raw else None
        except ValueError:
            raise ConfigError(f"{ENV_PREFIX}FILTER_SINCE must be YYYY-MM-DD, got {since_raw!r}")

        return cls(
            config_table_id=get("CONFIG_SPREADSHEET_ID") or "",
            config_range=get("CONFIG_RANGE") or defaults.config_range,
            log_range=get("LOG_RANGE") or defaults.log_range,
            batch_size=as_int("BATCH_SIZE", defaults.batch_size),
            rate_limit_delay=as_float("RATE_LIMIT_DELAY", defaults.rate_limit_delay),
            max_attempts=as_int("MAX_RETRIES", defaults.max_attempts),
            backoff_base=as_float("BACKOFF_BASE", defaults.backoff_base),
            backoff_max=as_float("BACKOFF_MAX", defaults.backoff_max),
            chunk_size=as_int("CHUNK_SIZE", defaults.chunk_size),
            chunk_pause=as_float("CHUNK_PAUSE", defaults.chunk_pause),
            destination_policy=(get("DESTINATION_POLICY") or defaults.destination_policy).lower(),
            pad_width=as_int("PAD_WIDTH", None),
            filter_date_column=as_int("FILTER_DATE_COLUMN", None),
            filter_since=since,
            retry_all_errors=(get("RETRY_ALL_ERRORS") or "").lower() in ("1", "true", "yes"),
            access_token=(env.get("GOOGLE_ACCESS_TOKEN") or "").strip() or None,
            log_level=(get("LOG_LEVEL") or defaults.log_level).upper(),
            log_dir=Path(get("LOG_DIR") or defaults.log_dir),
        )

    def validate(self) -> List[str]:
        """
        Returns a list of validation error messages. Empty list means valid.
        Credentials and the control spreadsheet id are checked by the caller,
        since offline commands do not need them.
        """
        errors: List[str] = []
        if self.batch_size < 1:
            errors.append("batch_size must be >= 1")
        if self.max_attempts < 1:
            errors.append("max_attempts must be >= 1")
        if self.chunk_size < 1:
            errors.append("chunk_size must be >= 1")
        for name in ("rate_limit_delay", "backoff_base", "backoff_max", "chunk_pause"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must be >= 0")
        if self.destination_policy not in DESTINATION_POLICIES:
            errors.append(
                f"destination_policy must be one of {', '.join(DESTINATION_POLICIES)}"
            )
        if self.log_level not in LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        if self.pad_width is not None and self.pad_width < 1:
            errors.append("pad_width must be >= 1")
        if (self.filter_date_column is None) != (self.filter_since is None):
            errors.append("filter_date_column and filter_since must be set together")
        if self.filter_date_column is not None and self.filter_date_column < 0:
            errors.append("filter_date_column must be >= 0")
        return errors
