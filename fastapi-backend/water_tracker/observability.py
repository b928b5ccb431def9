"""Observability module for logging, metrics, and error tracking."""

import logging
import json
import sys
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Request, Response
import time

# Prometheus metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'Duration of HTTP requests in seconds',
    ['method', 'endpoint']
)

complaints_by_status = Gauge(
    'complaints_by_status',
    'Number of stored complaints per lifecycle status',
    ['status']
)

complaints_submitted_total = Counter(
    'complaints_submitted_total',
    'Total number of complaints created',
    ['category', 'severity']
)

status_transitions_total = Counter(
    'complaint_status_transitions_total',
    'Total number of complaint status changes',
    ['from_status', 'to_status']
)

sms_notifications_total = Counter(
    'sms_notifications_total',
    'SMS submission notices by outcome',
    ['outcome']
)

active_websocket_connections = Gauge(
    'websocket_connections_active',
    'Number of active WebSocket connections'
)


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra'):
            log_data.update(record.extra)

        return json.dumps(log_data)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(
        level=level,
        format='%(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    for handler in logging.getLogger().handlers:
        handler.setFormatter(JSONFormatter())

    logger = logging.getLogger("water_tracker")
    logger.setLevel(level)

    logger.info("Structured JSON logging configured")


def init_sentry(dsn: Optional[str], environment: str) -> None:
    """Initialize Sentry error tracking."""
    if not dsn:
        logging.info("Sentry DSN not configured, skipping initialization")
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration

        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[FastApiIntegration()],
            traces_sample_rate=0.1,
        )
        logging.info("Sentry initialized successfully", extra={"dsn": dsn[:20] + "..."})
    except ImportError:
        logging.warning("sentry-sdk not installed, skipping Sentry initialization")
    except Exception as e:
        logging.error(f"Failed to initialize Sentry: {e}")


def update_status_gauges(counts: Dict[str, int]) -> None:
    for status, count in counts.items():
        complaints_by_status.labels(status=status).set(count)


def record_complaint_change(counts: Dict[str, int], category: Optional[str] = None,
                            severity: Optional[str] = None,
                            old_status: Optional[str] = None,
                            new_status: Optional[str] = None) -> None:
    """Refresh status gauges and count the creation or transition that just happened."""
    update_status_gauges(counts)
    if old_status is None:
        complaints_submitted_total.labels(category=category or "unknown",
                                          severity=severity or "unknown").inc()
    elif new_status is not None:
        status_transitions_total.labels(from_status=old_status, to_status=new_status).inc()


def setup_metrics_middleware(app):
    """Add Prometheus metrics middleware to FastAPI app."""
    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time

        # Use the route template so ids don't explode label cardinality
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        method = request.method
        status = response.status_code

        http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)

        return response


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def get_health_check(store=None, advancer=None, connections=None) -> Dict[str, Any]:
    """Get health check information for the running services."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "complaints": len(store) if store is not None else 0,
        "scheduled_auto_advances": len(advancer.scheduled_ids()) if advancer is not None else 0,
        "websocket_connections": connections.get_connection_count() if connections is not None else 0,
    }
