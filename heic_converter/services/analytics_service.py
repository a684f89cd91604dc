"""Process-wide usage counters and the analytics endpoints."""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Union

from flask import current_app, jsonify

from heic_converter.engine.convert import BatchResult, ConversionOutcome, ConversionSuccess
from heic_converter.services.security_service import (
    rate_limited,
    require_admin,
    require_admin_unless_public,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSnapshot:
    total_attempts: int
    successful: int
    success_rate: float
    avg_size_mb: float
    avg_latency_ms: int
    security_events: Dict[str, int] = field(default_factory=dict)

    def to_dict(self, include_security: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "totalConversions": self.total_attempts,
            "successfulConversions": self.successful,
            "successRate": self.success_rate,
            "avgFileSize": self.avg_size_mb,
            "avgProcessingTime": self.avg_latency_ms,
        }
        if include_security:
            payload["securityEvents"] = dict(self.security_events)
        return payload


class UsageCounters:
    """Approximate, in-memory conversion statistics. Reset only by restart."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total_attempts = 0
        self.total_successes = 0
        self.total_bytes = 0
        self.total_latency_ms = 0
        self.security_events: Counter = Counter()

    def record_attempt(self, outcome: Union[ConversionOutcome, BatchResult], latency_ms: float) -> None:
        """Count one request. A batch succeeds when any file converted and
        contributes the combined size of its JPEGs."""
        if isinstance(outcome, BatchResult):
            succeeded = outcome.succeeded > 0
            size = sum(success.byte_size for success in outcome.successes)
        else:
            succeeded = isinstance(outcome, ConversionSuccess)
            size = outcome.byte_size if succeeded else 0
        with self._lock:
            self.total_attempts += 1
            self.total_latency_ms += max(0, int(latency_ms))
            if succeeded:
                self.total_successes += 1
                self.total_bytes += size

    def record_security_event(self, name: str) -> None:
        with self._lock:
            self.security_events[name] += 1

    def snapshot(self) -> UsageSnapshot:
        with self._lock:
            attempts = self.total_attempts
            successes = self.total_successes
            total_bytes = self.total_bytes
            latency = self.total_latency_ms
            events = dict(self.security_events)

        success_rate = round(successes / attempts * 100, 1) if attempts else 0.0
        avg_size_mb = round(total_bytes / successes / (1024 * 1024), 2) if successes else 0.0
        avg_latency_ms = int(round(latency / attempts)) if attempts else 0
        return UsageSnapshot(
            total_attempts=attempts,
            successful=successes,
            success_rate=success_rate,
            avg_size_mb=avg_size_mb,
            avg_latency_ms=avg_latency_ms,
            security_events=events,
        )


def get_usage_counters() -> UsageCounters:
    return current_app.extensions["usage_counters"]


@rate_limited("general")
@require_admin_unless_public
def analytics():
    """Public usage summary (admin-gated when PUBLIC_ANALYTICS is off)."""
    return jsonify(get_usage_counters().snapshot().to_dict())


@rate_limited("general")
@require_admin
def admin_analytics():
    """Usage summary including security event counters."""
    return jsonify(get_usage_counters().snapshot().to_dict(include_security=True))
