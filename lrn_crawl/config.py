"""Runtime configuration for the crawler.

Settings come from environment variables, optionally populated from a
``.env`` file. Values are read at call time so that tests can monkeypatch
the environment and late ``.env`` loading still takes effect.

Environment Variables:
    LRN_HOME: Base directory for crawler state (default: ``~/.lrn``).
    LRN_CRAWL_RATE: Default requests per second (default: 2).
    LRN_CRAWL_TIMEOUT: Per-request timeout in seconds (default: 30).
    LRN_CRAWL_MAX_RETRIES: Fetch retry budget (default: 3).
    LRN_CRAWL_MAX_BODY_BYTES: Response size ceiling (default: 1 MiB).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Optional

from dotenv import load_dotenv

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "lrn"
CONFIG_ENV_FILE = CONFIG_DIR / ".env"

USER_AGENT = "lrn-crawler/1.0 (+https://github.com/lrn-dev/lrn)"
ROBOTS_USER_AGENT = "lrn-crawler"
ACCEPT_HEADER = "text/html,text/markdown,text/plain,application/xhtml+xml,*/*"

DEFAULT_RATE = 2.0
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_BODY_BYTES = 1024 * 1024
MAX_REDIRECTS = 5
QUEUE_MAX_RETRIES = 3
META_FILE = "_meta.json"


def load_config(
    *,
    cwd: Optional[Path] = None,
    config_env_file: Optional[Path] = None,
    load_env: Callable[[Path], bool] = load_dotenv,
) -> Optional[Path]:
    """Load ``.env`` configuration with fallback to the user config directory.

    Search order:
    1. ``.env`` in the current working directory
    2. ``~/.config/lrn/.env``

    Returns:
        The file that was loaded, or None when neither exists.
    """
    local_env = (cwd or Path.cwd()) / ".env"
    if local_env.is_file():
        load_env(local_env)
        return local_env

    user_env = config_env_file or CONFIG_ENV_FILE
    if user_env.is_file():
        load_env(user_env)
        return user_env

    return None


def _env_number(name: str, default: float, cast: Callable[[str], float]) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        LOGGER.warning("Invalid %s=%r; falling back to %s.", name, raw, default)
        return default
    if value <= 0:
        LOGGER.warning("%s must be positive (got %r); falling back to %s.", name, raw, default)
        return default
    return value


def get_lrn_home() -> Path:
    """Base directory for crawler state."""
    raw = os.getenv("LRN_HOME")
    if raw and raw.strip():
        return Path(raw.strip()).expanduser()
    return Path.home() / ".lrn"


def get_crawl_root() -> Path:
    return get_lrn_home() / "crawled"


def get_default_rate() -> float:
    return _env_number("LRN_CRAWL_RATE", DEFAULT_RATE, float)


def get_fetch_timeout() -> float:
    return _env_number("LRN_CRAWL_TIMEOUT", DEFAULT_TIMEOUT, float)


def get_max_retries() -> int:
    # Zero is a valid budget here, so this does not go through _env_number.
    raw = os.getenv("LRN_CRAWL_MAX_RETRIES")
    if raw is None or not raw.strip():
        return DEFAULT_MAX_RETRIES
    try:
        value = int(raw.strip())
    except ValueError:
        value = -1
    if value < 0:
        LOGGER.warning(
            "Invalid LRN_CRAWL_MAX_RETRIES=%r; falling back to %s.",
            raw,
            DEFAULT_MAX_RETRIES,
        )
        return DEFAULT_MAX_RETRIES
    return value


def get_max_body_bytes() -> int:
    return int(_env_number("LRN_CRAWL_MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES, int))
