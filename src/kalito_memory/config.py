"""Runtime configuration loaded from the environment and optional .env files."""

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "~/.kalito-memory/memory.db"


def load_env_file() -> Optional[str]:
    """Load the first .env file found next to the entry point, its parent, or the CWD.

    Returns:
        The path that was loaded, or None if no file was found.
    """
    main_dir = os.path.dirname(os.path.abspath(sys.argv[0]))
    env_locations = [
        os.path.join(main_dir, ".env"),
        os.path.join(os.path.dirname(main_dir), ".env"),
        os.path.join(os.getcwd(), ".env"),
    ]

    for env_path in env_locations:
        if os.path.exists(env_path):
            logger.info(f"Loading .env from {env_path}")
            load_dotenv(env_path)
            return env_path

    logger.debug("No .env file found in expected locations")
    return None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


def _env_list(name: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


@dataclass
class Settings:
    """Engine settings. ``from_env`` reads KALITO_* variables."""

    openai_api_key: Optional[str] = None
    cloud_base_url: str = "https://api.openai.com/v1"
    local_base_url: str = "http://localhost:11434/v1"
    local_models: List[str] = field(default_factory=list)
    default_model: str = "gpt-4.1-nano"
    summary_model: str = "gpt-4.1-nano"
    timeout: float = 60.0
    cache_ttl: float = 30.0
    summary_threshold: int = 8
    token_budget: int = 3000
    recent_turns: int = 8
    pin_limit: int = 5
    summary_limit: int = 3
    auto_pins: bool = True
    db_path: str = DEFAULT_DB_PATH
    domain_file: Optional[str] = None
    debug: bool = False

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "Settings":
        """Build settings from environment variables.

        ``KALITO_TIMEOUT`` is given in milliseconds.
        """
        if load_dotenv_file:
            load_env_file()

        defaults = cls()
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            cloud_base_url=os.getenv("KALITO_CLOUD_BASE_URL", defaults.cloud_base_url),
            local_base_url=os.getenv("KALITO_LOCAL_BASE_URL", defaults.local_base_url),
            local_models=_env_list("KALITO_LOCAL_MODELS"),
            default_model=os.getenv("KALITO_DEFAULT_MODEL", defaults.default_model),
            summary_model=os.getenv("KALITO_SUMMARY_MODEL", defaults.summary_model),
            timeout=_env_float("KALITO_TIMEOUT", defaults.timeout * 1000) / 1000,
            cache_ttl=_env_float("KALITO_CACHE_TTL", defaults.cache_ttl),
            summary_threshold=_env_int("KALITO_SUMMARY_THRESHOLD", defaults.summary_threshold),
            token_budget=_env_int("KALITO_TOKEN_BUDGET", defaults.token_budget),
            auto_pins=os.getenv("KALITO_AUTO_PINS", "1").lower() not in ("0", "false", "no"),
            db_path=os.getenv("KALITO_DB_PATH", defaults.db_path),
            domain_file=os.getenv("KALITO_DOMAIN_FILE") or None,
            debug=bool(os.getenv("KALITO_DEBUG")),
        )

    @property
    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser()
