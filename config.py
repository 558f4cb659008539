import logging
import os

from dotenv import load_dotenv

load_dotenv() # Load variables from the .env file

logger = logging.getLogger(__name__)


def parse_int(env_var: str, default: int) -> int:
    """Read an integer environment variable, falling back to the default on bad input."""
    raw = os.environ.get(env_var, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"⚠️ Invalid value for {env_var}: {raw!r}, using {default}")
        return default


def parse_proxies(proxy_env_var: str) -> list:
    """Parse a comma-separated proxy list from an environment variable."""
    proxies_str = os.environ.get(proxy_env_var, "").strip()
    if proxies_str:
        return [p.strip() for p in proxies_str.split(',') if p.strip()]
    return []


PORT = parse_int("PORT", 7860)
HOST = os.environ.get("HOST", "0.0.0.0")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Seconds
CACHE_TTL = parse_int("CACHE_TTL", 300)
CACHE_CLEANUP_INTERVAL = parse_int("CACHE_CLEANUP_INTERVAL", 60)

# Milliseconds
REQUEST_TIMEOUT = parse_int("REQUEST_TIMEOUT", 30000)

GLOBAL_PROXIES = parse_proxies('GLOBAL_PROXY')
