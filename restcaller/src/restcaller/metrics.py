"""
Prometheus metrics for the client layer.

Counters are registered once at import time in the default registry, so any
number of ``ApiClient`` instances in one process share them.

Metrics
-------

* ``restcaller_requests_total{method=..., outcome=...}`` – final outcomes
  returned to callers (``success`` / ``failure``).
* ``restcaller_refresh_total{result=...}`` – refresh attempts
  (``success``, ``no_token``, ``failed``).
* ``restcaller_retries_total`` – requests re-issued after a refresh.

Call :func:`start_metrics_server` to expose them over HTTP; the port
defaults to ``PROMETHEUS_PORT`` (9108).
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from prometheus_client import Counter, start_http_server

logger = logging.getLogger(__name__)

REQUESTS = Counter(
    "restcaller_requests_total",
    "Client operations by HTTP method and final outcome",
    labelnames=["method", "outcome"],
)
REFRESHES = Counter(
    "restcaller_refresh_total",
    "Token refresh attempts by result",
    labelnames=["result"],
)
RETRIES = Counter(
    "restcaller_retries_total",
    "Requests re-issued after a successful token refresh",
)


def record_outcome(method: str, is_success: bool) -> None:
    REQUESTS.labels(method=method.upper(), outcome="success" if is_success else "failure").inc()


def start_metrics_server(port: Optional[int] = None) -> None:
    port = port if port is not None else int(os.environ.get("PROMETHEUS_PORT", "9108"))
    try:
        start_http_server(port)
        logger.info("Metrics server listening on port %d", port)
    except OSError as exc:
        # Likely already started by another component
        logger.debug("Prometheus server likely already running: %s", exc)


__all__ = ["REQUESTS", "REFRESHES", "RETRIES", "record_outcome", "start_metrics_server"]
