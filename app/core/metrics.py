"""Prometheus metrics for the API and the background workers."""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

REGISTRY = CollectorRegistry()

# Gunicorn / multi-worker deployments aggregate through a shared directory
if "PROMETHEUS_MULTIPROC_DIR" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


APP_INFO = Info(
    "learning_platform_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Job Queue Metrics
# ============================================
JOBS_ENQUEUED_TOTAL = Counter(
    "jobs_enqueued_total",
    "Jobs accepted by the broker",
    ["queue"],
    registry=REGISTRY,
)

JOBS_TOTAL = Counter(
    "jobs_total",
    "Jobs finished by workers, by outcome",
    ["queue", "status"],
    registry=REGISTRY,
)

JOB_DURATION_SECONDS = Histogram(
    "job_duration_seconds",
    "Job handler duration in seconds",
    ["queue"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0],
    registry=REGISTRY,
)


# ============================================
# Video Pipeline Metrics
# ============================================
VIDEO_RENDITIONS_TOTAL = Counter(
    "video_renditions_total",
    "Quality renditions attempted by the processing worker",
    ["quality", "outcome"],
    registry=REGISTRY,
)

VIDEO_PROCESSING_OUTCOMES_TOTAL = Counter(
    "video_processing_outcomes_total",
    "Final status of processed videos",
    ["status"],
    registry=REGISTRY,
)

STREAM_BYTES_TOTAL = Counter(
    "stream_bytes_total",
    "Bytes sent by the streaming endpoint",
    ["quality"],
    registry=REGISTRY,
)

ACTIVE_PROGRESS_FEEDS = Gauge(
    "video_progress_feeds_active",
    "Open Server-Sent Events progress connections",
    registry=REGISTRY,
)


# ============================================
# Certificate Metrics
# ============================================
CERTIFICATES_ISSUED_TOTAL = Counter(
    "certificates_issued_total",
    "Certificates created by the certificate worker",
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Latest metrics in Prometheus exposition format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
