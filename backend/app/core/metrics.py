"""
Prometheus metrics configuration
"""
import os

from prometheus_client import (CONTENT_TYPE_LATEST, Counter, Gauge, Histogram,
                               Info, generate_latest)
from prometheus_client.multiprocess import MultiProcessCollector
from prometheus_client.registry import REGISTRY, CollectorRegistry

_registry = REGISTRY
if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
    _registry = CollectorRegistry()
    MultiProcessCollector(_registry)

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_errors_total = Counter(
    "http_errors_total",
    "Total number of HTTP errors",
    ["method", "endpoint", "status_code", "error_type"]
)

# ============================================================================
# LLM Request Metrics
# ============================================================================

llm_requests_total = Counter(
    "llm_requests_total",
    "Total number of LLM requests",
    ["model", "use_case", "status"]
)

llm_request_duration_seconds = Histogram(
    "llm_request_duration_seconds",
    "LLM request duration in seconds",
    ["model", "use_case"],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0)
)

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Total number of tokens reported by the LLM provider",
    ["model", "type"]  # type: 'prompt' or 'completion'
)

llm_errors_total = Counter(
    "llm_errors_total",
    "Total number of LLM errors",
    ["model", "use_case", "error_type"]
)

# ============================================================================
# Marketplace Metrics
# ============================================================================

registrations_total = Counter(
    "registrations_total",
    "Registration status changes",
    ["status"]  # 'Pending approval', 'Approved', 'Not approved', 'Cancelled'
)

registration_assessments_total = Counter(
    "registration_assessments_total",
    "AI registration assessments by outcome",
    ["outcome"]  # 'auto_approved', 'review_needed', 'manual_review', 'skipped', 'failed'
)

notifications_total = Counter(
    "notifications_total",
    "In-app notifications created",
    ["type"]
)

emails_total = Counter(
    "emails_total",
    "Notification emails by delivery status",
    ["status"]  # 'sent', 'disabled', 'skipped', 'failed'
)

onboarding_transitions_total = Counter(
    "onboarding_transitions_total",
    "Onboarding session state changes",
    ["flow", "to_state"]
)

# ============================================================================
# Database Metrics
# ============================================================================

db_queries_total = Counter(
    "db_queries_total",
    "Total number of database queries",
    ["operation", "table"]
)

db_query_duration_seconds = Histogram(
    "db_query_duration_seconds",
    "Database query duration in seconds",
    ["operation", "table"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)
)

db_connection_pool_size = Gauge(
    "db_connection_pool_size",
    "Database connection pool size",
    ["state"]  # state: 'active', 'idle'
)

# ============================================================================
# System Info
# ============================================================================

app_info = Info(
    "app_info",
    "Application information"
)


def set_app_info(app_name: str, app_env: str, version: str):
    app_info.info({
        "app_name": app_name,
        "app_env": app_env,
        "version": version,
    })


def get_metrics():
    """
    Get Prometheus metrics in text format

    Returns:
        bytes: Metrics in Prometheus text format
    """
    return generate_latest(_registry)


def get_metrics_content_type():
    """Content type for the metrics endpoint"""
    return CONTENT_TYPE_LATEST
