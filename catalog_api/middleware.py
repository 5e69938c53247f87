"""
Request monitoring for the Book Catalog API.

Tracks per endpoint (``METHOD /path``):
1. Request and error counts
2. Latency samples (avg, p50, p95)
3. Status code distribution

Every request is also written to the ``api-requests`` access log.
"""

import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Callable, Deque, Dict, List, Optional
import statistics

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .logger_setup import get_logger

logger = get_logger("api-requests")

MAX_LATENCY_SAMPLES = 1000


@dataclass
class EndpointMetrics:
    """Metrics for a single endpoint."""
    request_count: int = 0
    error_count: int = 0
    total_latency_ms: float = 0.0
    latencies: Deque[float] = field(default_factory=lambda: deque(maxlen=MAX_LATENCY_SAMPLES))
    status_codes: Dict[int, int] = field(default_factory=lambda: defaultdict(int))
    last_request_time: Optional[datetime] = None


class RequestMetricsCollector:
    """Thread-safe in-memory request metrics."""

    def __init__(self):
        self.endpoints: Dict[str, EndpointMetrics] = defaultdict(EndpointMetrics)
        self.started_at = datetime.utcnow()
        self._lock = Lock()

    def record_request(self, endpoint: str, method: str, status_code: int, latency_ms: float):
        with self._lock:
            metrics = self.endpoints[f"{method} {endpoint}"]
            metrics.request_count += 1
            metrics.total_latency_ms += latency_ms
            metrics.latencies.append(latency_ms)
            metrics.status_codes[status_code] += 1
            metrics.last_request_time = datetime.utcnow()
            if status_code >= 400:
                metrics.error_count += 1

    def get_endpoint_stats(self, endpoint: str) -> Dict:
        with self._lock:
            return self._endpoint_stats(endpoint)

    def _endpoint_stats(self, endpoint: str) -> Dict:
        metrics = self.endpoints.get(endpoint)
        if not metrics or metrics.request_count == 0:
            return {}

        latencies = list(metrics.latencies) or [0.0]
        return {
            'endpoint': endpoint,
            'request_count': metrics.request_count,
            'error_count': metrics.error_count,
            'error_rate': metrics.error_count / metrics.request_count * 100,
            'avg_latency_ms': metrics.total_latency_ms / metrics.request_count,
            'p50_latency_ms': statistics.median(latencies),
            'p95_latency_ms': _percentile(latencies, 95),
            'status_codes': dict(metrics.status_codes),
            'last_request_time': metrics.last_request_time.isoformat() if metrics.last_request_time else None,
        }

    def get_all_stats(self) -> Dict:
        with self._lock:
            endpoints = [self._endpoint_stats(name) for name in self.endpoints]
            endpoints = [stats for stats in endpoints if stats]
            endpoints.sort(key=lambda stats: stats['request_count'], reverse=True)
            total_requests = sum(stats['request_count'] for stats in endpoints)
            total_errors = sum(stats['error_count'] for stats in endpoints)
            return {
                'summary': {
                    'total_requests': total_requests,
                    'total_errors': total_errors,
                    'error_rate': (total_errors / total_requests * 100) if total_requests else 0,
                    'uptime_seconds': (datetime.utcnow() - self.started_at).total_seconds(),
                },
                'endpoints': endpoints,
                'timestamp': datetime.utcnow().isoformat(),
            }

    def reset(self):
        with self._lock:
            self.endpoints.clear()
            self.started_at = datetime.utcnow()


def _percentile(data: List[float], p: float) -> float:
    if not data:
        return 0
    ordered = sorted(data)
    k = (len(ordered) - 1) * (p / 100)
    lower = int(k)
    upper = min(lower + 1, len(ordered) - 1)
    return ordered[lower] + (ordered[upper] - ordered[lower]) * (k - lower)


metrics_collector = RequestMetricsCollector()


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Records latency and status of every request except the probes."""

    EXCLUDED_PATHS = {'/health', '/metrics'}

    def __init__(self, app: ASGIApp, collector: Optional[RequestMetricsCollector] = None):
        super().__init__(app)
        self.collector = collector or metrics_collector

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            latency_ms = (time.perf_counter() - start_time) * 1000
            self.collector.record_request(
                endpoint=request.url.path,
                method=request.method,
                status_code=status_code,
                latency_ms=latency_ms,
            )
            logger.info(
                "Request handled",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                latency_ms=round(latency_ms, 2),
            )

        return response


def get_metrics_collector() -> RequestMetricsCollector:
    return metrics_collector
