import os
import logging
from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_API_URL = "https://api.hyperbolic.xyz/v1"
DEFAULT_USER_DATA_FILE = "database.yml"

TELEGRAM_MSG_LIMIT = 4096
CHUNK_PREFIX_BUFFER = 20

BULK_POLICIES = ("sequential", "staggered")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> dict:
    """Reads the runtime knobs from the environment, failing fast on bad values."""
    token = os.getenv("TELEGRAM_BOT_TOKEN")
    if not token:
        raise ConfigError("TELEGRAM_BOT_TOKEN is not set")

    policy = os.getenv("BULK_POLICY", "sequential").strip().lower()
    if policy not in BULK_POLICIES:
        raise ConfigError(f"BULK_POLICY must be one of {BULK_POLICIES}, got {policy!r}")

    min_delay = _env_float("BULK_MIN_DELAY", 60.0)
    max_delay = _env_float("BULK_MAX_DELAY", 120.0)
    if min_delay < 0 or min_delay > max_delay:
        raise ConfigError(f"Invalid bulk delay bounds: {min_delay}..{max_delay}")

    settings = {
        "token": token,
        "api_url": os.getenv("HYPERBOLIC_API_URL", DEFAULT_API_URL).rstrip("/"),
        "timeout": _env_float("HYPERBOLIC_TIMEOUT", 120.0),
        "user_data_file": os.getenv("USER_DATA_FILE", DEFAULT_USER_DATA_FILE),
        "bulk_policy": policy,
        "bulk_min_delay": min_delay,
        "bulk_max_delay": max_delay,
        "implicit_bulk": _env_bool("IMPLICIT_BULK", False),
    }
    logger.info(
        f"Bulk policy: {policy} ({min_delay:.0f}-{max_delay:.0f}s), "
        f"implicit bulk: {settings['implicit_bulk']}"
    )
    return settings
