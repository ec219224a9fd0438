"""
Prometheus metrics configuration
"""
from prometheus_client import Counter, Histogram

from dineledger.core.config import get_settings

# ============================================================================
# Ledger RPC Metrics
# ============================================================================

ledger_rpc_requests_total = Counter(
    'dineledger_rpc_requests_total',
    'Total number of ledger JSON-RPC requests',
    ['method', 'status']  # status: 'ok', 'rpc_error', 'transport_error'
)

ledger_rpc_request_duration_seconds = Histogram(
    'dineledger_rpc_request_duration_seconds',
    'Ledger JSON-RPC request duration in seconds',
    ['method'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

# ============================================================================
# Submission Metrics
# ============================================================================

submissions_total = Counter(
    'dineledger_submissions_total',
    'Total number of transaction submissions by outcome',
    ['outcome']  # outcome: 'confirmed', 'pending', 'already_processed', 'failed'
)

confirmation_wait_seconds = Histogram(
    'dineledger_confirmation_wait_seconds',
    'Time spent waiting for confirmation',
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0)
)

classified_errors_total = Counter(
    'dineledger_classified_errors_total',
    'Total number of classified errors',
    ['kind']
)

# ============================================================================
# Aggregation / Scoring Metrics
# ============================================================================

skipped_records_total = Counter(
    'dineledger_skipped_records_total',
    'Records skipped because they could not be decoded',
    ['record_type']
)

confidence_scores_total = Counter(
    'dineledger_confidence_scores_total',
    'Confidence levels produced, by source',
    ['source']  # source: 'endpoint', 'fallback'
)


def _enabled() -> bool:
    return get_settings().enable_metrics


def record_rpc_request(method: str, status: str, duration: float):
    """Record a ledger RPC call"""
    if not _enabled():
        return
    ledger_rpc_requests_total.labels(method=method, status=status).inc()
    ledger_rpc_request_duration_seconds.labels(method=method).observe(duration)


def record_submission(outcome: str, wait_seconds: float = None):
    """Record a submission outcome"""
    if not _enabled():
        return
    submissions_total.labels(outcome=outcome).inc()
    if wait_seconds is not None:
        confirmation_wait_seconds.observe(wait_seconds)


def record_classified_error(kind: str):
    """Record a classified error"""
    if _enabled():
        classified_errors_total.labels(kind=kind).inc()


def record_skipped_record(record_type: str):
    """Record a malformed record skipped during a scan"""
    if _enabled():
        skipped_records_total.labels(record_type=record_type).inc()


def record_confidence_score(source: str):
    """Record where a confidence level came from"""
    if _enabled():
        confidence_scores_total.labels(source=source).inc()
