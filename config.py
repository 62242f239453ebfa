import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

TELEGRAM_TOKEN = os.getenv("TELEGRAM_TOKEN")
USE_REDIS = _bool_env("USE_REDIS", False)
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")

CHECKIN_API_BASE_URL = os.getenv("CHECKIN_API_BASE_URL", "https://api.zostel.com")
CHECKIN_API_TOKEN = os.getenv("CHECKIN_API_TOKEN", "")
CHECKIN_OPERATOR_CODE = os.getenv("CHECKIN_OPERATOR_CODE", "")
CHECKIN_API_TIMEOUT_SECONDS = _float_env("CHECKIN_API_TIMEOUT_SECONDS", 15.0)
CHECKIN_API_MAX_RETRIES = _int_env("CHECKIN_API_MAX_RETRIES", 3)
CHECKIN_CAPTURE_DIR = os.getenv("CHECKIN_CAPTURE_DIR", "")  # empty means the system temp dir

CHECKIN_METRICS_ENABLED = _bool_env("CHECKIN_METRICS_ENABLED", False)
CHECKIN_METRICS_BACKEND = os.getenv("CHECKIN_METRICS_BACKEND", "noop")
CHECKIN_STATSD_HOST = os.getenv("CHECKIN_STATSD_HOST", "localhost")
CHECKIN_STATSD_PORT = _int_env("CHECKIN_STATSD_PORT", 8125)
CHECKIN_STATSD_PREFIX = os.getenv("CHECKIN_STATSD_PREFIX") or None
