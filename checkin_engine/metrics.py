"""Check-in counters.

Every counter the wizard emits is declared in ``COUNTERS``. Backends are
loaded on first use so the optional ``metrics`` extra stays optional; a
broken backend is logged and never fails a check-in.
"""

from typing import Any

import structlog

import config

logger = structlog.get_logger("checkin.metrics")

COUNTERS = {
    "checkin.upload.failure": "Document uploads that failed to reach the API",
    "checkin.upload.escalated": "Upload failures escalated to a technical error",
    "checkin.validation.rejected": "Front-side documents rejected by ID validation",
    "checkin.validation.timeout": "ID validations abandoned after the last status check",
    "checkin.submit.success": "Check-ins accepted by the operator",
    "checkin.submit.failure": "Check-in submissions that failed",
}

_prometheus_counters: dict[str, Any] = {}
_statsd_client: Any = None
_statsd_ready = False


def prometheus_name(name: str) -> str:
    return name.replace(".", "_") + "_total"


def _init_statsd() -> Any:
    global _statsd_client, _statsd_ready
    if _statsd_ready:
        return _statsd_client

    _statsd_ready = True
    try:
        from statsd import StatsClient

        _statsd_client = StatsClient(
            host=config.CHECKIN_STATSD_HOST,
            port=config.CHECKIN_STATSD_PORT,
            prefix=config.CHECKIN_STATSD_PREFIX,
        )
    except Exception as exc:
        logger.warning("metrics_backend_unavailable", backend="statsd", error=str(exc))
        _statsd_client = None
    return _statsd_client


def _prometheus_counter(name: str) -> Any:
    counter = _prometheus_counters.get(name)
    if counter is None:
        from prometheus_client import Counter

        counter = Counter(prometheus_name(name), COUNTERS[name])
        _prometheus_counters[name] = counter
    return counter


def inc(name: str, value: int = 1) -> None:
    if name not in COUNTERS:
        raise KeyError(f"Unknown check-in counter: {name}")
    if not config.CHECKIN_METRICS_ENABLED:
        return

    backend = (config.CHECKIN_METRICS_BACKEND or "noop").strip().lower()
    try:
        if backend == "prometheus":
            _prometheus_counter(name).inc(value)
        elif backend == "statsd":
            client = _init_statsd()
            if client is not None:
                client.incr(name, value)
    except Exception as exc:
        logger.warning("metrics_inc_failed", backend=backend, counter=name, error=str(exc))
