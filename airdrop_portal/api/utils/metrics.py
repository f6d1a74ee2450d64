"""
Simple metrics collection for the claim workflow.
Lightweight in-process alternative to Prometheus.
"""

from typing import Dict, Any
from datetime import datetime, timedelta, timezone
from collections import defaultdict, deque
import threading

from airdrop_portal.core.logger.logger import get_logger

logger = get_logger(__name__)


class ClaimOutcome:
    SUCCESS = "success"
    CAPTCHA_FAILED = "captcha_failed"
    NOT_ELIGIBLE = "not_eligible"
    ALREADY_CLAIMED = "already_claimed"
    INVALID_SIGNATURE = "invalid_signature"
    PAUSED = "paused"
    TRANSFER_FAILED = "transfer_failed"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClaimMetrics:
    """In-memory metrics collector for eligibility checks, claims and geolocation."""

    def __init__(self, retention_hours: int = 24):
        self._lock = threading.Lock()
        self._retention_hours = retention_hours

        # Time-series data (timestamp, value) pairs
        self._eligibility_checks = deque()
        self._claim_success = deque()
        self._claim_failures = deque()

        self._counters = {
            'total_eligibility_checks': 0,
            'total_eligible_hits': 0,
            'total_claim_attempts': 0,
            'total_claim_success': 0,
            'total_claim_failures': 0
        }

        self._claim_outcomes = defaultdict(int)
        self._geolocation_sources = defaultdict(int)

    def _cleanup_old_data(self):
        """Remove data older than retention period."""
        cutoff_time = _utcnow() - timedelta(hours=self._retention_hours)

        for data_deque in (self._eligibility_checks, self._claim_success, self._claim_failures):
            while data_deque and data_deque[0][0] < cutoff_time:
                data_deque.popleft()

    def record_eligibility_check(self, eligible: bool):
        with self._lock:
            self._eligibility_checks.append((_utcnow(), 1 if eligible else 0))
            self._counters['total_eligibility_checks'] += 1
            if eligible:
                self._counters['total_eligible_hits'] += 1
            self._cleanup_old_data()

    def record_claim(self, outcome: str):
        """Record the final outcome of one claim request."""
        with self._lock:
            now = _utcnow()
            self._counters['total_claim_attempts'] += 1
            self._claim_outcomes[outcome] += 1

            if outcome == ClaimOutcome.SUCCESS:
                self._claim_success.append((now, 1))
                self._counters['total_claim_success'] += 1
            else:
                self._claim_failures.append((now, 1))
                self._counters['total_claim_failures'] += 1
            self._cleanup_old_data()

    def record_geolocation(self, source: str):
        with self._lock:
            self._geolocation_sources[source] += 1

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get current metrics summary."""
        with self._lock:
            self._cleanup_old_data()

            one_hour_ago = _utcnow() - timedelta(hours=1)
            recent_checks = sum(1 for ts, _ in self._eligibility_checks if ts > one_hour_ago)
            recent_success = sum(1 for ts, _ in self._claim_success if ts > one_hour_ago)
            recent_failures = sum(1 for ts, _ in self._claim_failures if ts > one_hour_ago)

            total_recent = recent_success + recent_failures
            success_rate = (recent_success / total_recent * 100) if total_recent > 0 else 0

            return {
                'timestamp': _utcnow().isoformat(),
                'overall': dict(self._counters),
                'last_hour': {
                    'eligibility_checks': recent_checks,
                    'claim_success': recent_success,
                    'claim_failures': recent_failures,
                    'success_rate_percent': round(success_rate, 2)
                },
                'claim_outcomes': dict(self._claim_outcomes),
                'geolocation_sources': dict(self._geolocation_sources),
                'retention_hours': self._retention_hours
            }

    def get_health_metrics(self) -> Dict[str, str]:
        """Error-rate based status for the readiness check."""
        with self._lock:
            # Client-side rejections are not service errors
            errors = self._claim_outcomes.get(ClaimOutcome.ERROR, 0) + \
                self._claim_outcomes.get(ClaimOutcome.TRANSFER_FAILED, 0)
            successes = self._counters['total_claim_success']

            total = successes + errors
            error_rate = (errors / total * 100) if total > 0 else 0

            if error_rate > 50:
                status = "unhealthy"
            elif error_rate > 20:
                status = "degraded"
            else:
                status = "healthy"

            return {
                'status': status,
                'error_rate_percent': f"{error_rate:.1f}",
                'claims_registered': str(self._counters['total_claim_success'])
            }


# Global metrics instance
metrics = ClaimMetrics()


def get_metrics() -> ClaimMetrics:
    """Get the global metrics instance."""
    return metrics
