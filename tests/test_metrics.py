"""Tests for the Prometheus counters."""

from __future__ import annotations

from prometheus_client import REGISTRY

from restcaller.metrics import record_outcome


def _requests(method: str, outcome: str) -> float:
    value = REGISTRY.get_sample_value("restcaller_requests_total", {"method": method, "outcome": outcome})
    return value or 0.0


def test_record_outcome_labels_by_method() -> None:
    before = _requests("GET", "failure")
    record_outcome("get", False)
    assert _requests("GET", "failure") == before + 1


def test_record_outcome_success() -> None:
    before = _requests("POST", "success")
    record_outcome("POST", True)
    assert _requests("POST", "success") == before + 1
