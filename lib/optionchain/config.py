"""
Service configuration and logging setup.

Configuration is resolved in priority order:
1. Explicit config path argument
2. OPTIONCHAIN_CONFIG environment variable
3. ./config.yaml
4. Default values

Environment variables PORT, HOST and LOG_LEVEL override the merged values.

Example config.yaml:
    port: 6123
    max_retries: 3
    cors_origins:
      - http://localhost:3000
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .payoff import DEFAULT_GRID_POINTS


logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "OPTIONCHAIN_CONFIG"

NSE_BASE_URL = "https://www.nseindia.com/"

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://0.0.0.0:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8080",
    "http://0.0.0.0:8080",
    "http://127.0.0.1:8080",
]

# Rotated per request; the upstream rejects non-browser clients.
# Fallback pool only: set user_agents in config.yaml to keep it current.
DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36 Edg/124.0.0.0",
]


def setup_logging(level: int = logging.INFO) -> None:
    """Configure logging to stderr with the specified level."""
    logging.basicConfig(
        level=level,
        format='[%(levelname)s] %(message)s',
        stream=sys.stderr,
    )
    # Quiet noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@dataclass
class ServiceConfig:
    """Runtime settings for the proxy service."""
    host: str = "0.0.0.0"
    port: int = 6123
    base_url: str = NSE_BASE_URL
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    max_retries: int = 3              # retries after the first attempt
    retry_backoff: float = 0.5        # urllib3 backoff_factor
    timeout_sec: float = 10.0
    user_agents: List[str] = field(default_factory=lambda: list(DEFAULT_USER_AGENTS))
    grid_points: int = DEFAULT_GRID_POINTS
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceConfig":
        """Create config from a dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    @property
    def log_level_value(self) -> int:
        return getattr(logging, str(self.log_level).upper(), logging.INFO)


def _find_config_path(config_path: Optional[str]) -> Optional[Path]:
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR)

    if config_path is not None:
        return Path(config_path)

    default_path = Path("./config.yaml")
    if default_path.exists():
        return default_path
    return None


def load_config(config_path: Optional[str] = None) -> ServiceConfig:
    """
    Load service configuration.

    Args:
        config_path: Optional explicit YAML path

    Returns:
        ServiceConfig with file values and environment overrides applied
    """
    values: Dict[str, Any] = {}

    path = _find_config_path(config_path)
    if path is not None:
        if path.exists():
            logger.info(f"Loading config from {path}")
            with open(path) as f:
                file_config = yaml.safe_load(f)
                if file_config:
                    values.update(file_config)
        else:
            logger.warning(f"Config file {path} not found, using defaults")

    if os.environ.get("PORT"):
        values["port"] = int(os.environ["PORT"])
    if os.environ.get("HOST"):
        values["host"] = os.environ["HOST"]
    if os.environ.get("LOG_LEVEL"):
        values["log_level"] = os.environ["LOG_LEVEL"]

    return ServiceConfig.from_dict(values)
