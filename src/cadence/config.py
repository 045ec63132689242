"""Configuration loader.

Loads settings from ~/.cadence/config.json, then applies environment
variable overrides (a ``.env`` file is loaded by the entry point).
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .completion.client import DEFAULT_MODEL

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".cadence" / "config.json"

# Environment variable -> config field
ENV_OVERRIDES = {
    "CADENCE_DB_PATH": "db_path",
    "CADENCE_LOG_DIR": "log_dir",
    "GROQ_MODEL": "groq_model",
    "CADENCE_COMPLETION_TIMEOUT": "completion_timeout",
    "CADENCE_CALENDAR_TIMEOUT": "calendar_timeout",
    "CADENCE_CALENDAR_ID": "calendar_id",
    "GOOGLE_ACCESS_TOKEN": "google_access_token",
    "TELEGRAM_TOKEN": "telegram_token",
    "CADENCE_USER_ID": "user_id",
    "CADENCE_LOOKAHEAD_DAYS": "lookahead_days",
    "CADENCE_TICKET_CHECK_INTERVAL": "ticket_check_interval_seconds",
}


@dataclass
class CadenceConfig:
    """Runtime configuration.

    Attributes:
        db_path: SQLite database file.
        log_dir: Directory for the JSONL event log.
        groq_model: Model used for completions.
        completion_timeout: Seconds before a completion call is abandoned.
        calendar_timeout: Seconds before a calendar request is abandoned.
        calendar_max_retries: Retries for idempotent calendar reads.
        calendar_id: Fallback calendar when none are selected.
        google_access_token: Bearer token for the Calendar API.
        telegram_token: Bot token for the Telegram surface.
        user_id: Owner of goals created from this process.
        lookahead_days: How far ahead suggestions are generated.
        batch_size: Suggestions requested per goal.
        check_interval_seconds: Period of the daily scheduling check.
        ticket_check_interval_seconds: Period of the ticket overlay check.
    """

    db_path: Path | None = None
    log_dir: Path | None = None
    groq_model: str = DEFAULT_MODEL
    completion_timeout: float = 30.0
    calendar_timeout: float = 15.0
    calendar_max_retries: int = 3
    calendar_id: str = "primary"
    google_access_token: str | None = None
    telegram_token: str | None = None
    user_id: str = "default"
    lookahead_days: int = 7
    batch_size: int = 3
    check_interval_seconds: float = 86400.0
    ticket_check_interval_seconds: float = 1800.0

    def __post_init__(self) -> None:
        """Validate config and set defaults."""
        if self.db_path is None:
            self.db_path = Path.home() / ".cadence" / "cadence.db"
        if self.log_dir is None:
            self.log_dir = Path.home() / ".cadence" / "logs"
        self.db_path = Path(self.db_path).expanduser()
        self.log_dir = Path(self.log_dir).expanduser()

        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.lookahead_days < 1:
            raise ValueError("lookahead_days must be at least 1")
        if self.completion_timeout <= 0 or self.calendar_timeout <= 0:
            raise ValueError("timeouts must be positive")
        if self.calendar_max_retries < 0:
            raise ValueError("calendar_max_retries can't be negative")
        if self.check_interval_seconds <= 0 or self.ticket_check_interval_seconds <= 0:
            raise ValueError("check intervals must be positive")


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw file/env value to the type of config field ``name``."""
    default = CadenceConfig.__dataclass_fields__[name].default
    if value is None:
        return None
    if isinstance(default, bool):
        return str(value).lower() in ("1", "true", "yes")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return str(value)


def load_config(
    config_path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> CadenceConfig:
    """Load CadenceConfig from a JSON file and the environment.

    The config file is a flat object keyed by field name:
    ```json
    {
      "calendar_id": "primary",
      "lookahead_days": 7,
      "batch_size": 3
    }
    ```

    Args:
        config_path: Path to config file. Uses DEFAULT_CONFIG_PATH if None.
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        CadenceConfig instance with loaded values.

    Raises:
        ValueError: If a value has the wrong type or fails validation.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    data: dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, "r") as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                data = loaded
            else:
                logger.warning("Config in %s is not an object. Using defaults.", path)
        except json.JSONDecodeError as e:
            logger.warning("Invalid JSON in %s: %s. Using defaults.", path, e)
        except OSError as e:
            logger.warning("Cannot read %s: %s. Using defaults.", path, e)
    else:
        logger.debug("No config file at %s, using defaults", path)

    known = {f.name for f in fields(CadenceConfig)}
    values: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("Unknown config key '%s' ignored", key)
            continue
        values[key] = _coerce(key, value)

    for var, name in ENV_OVERRIDES.items():
        if env.get(var):
            values[name] = _coerce(name, env[var])

    return CadenceConfig(**values)
