"""
Prometheus metrics definitions.
All metrics are registered here and can be imported by other modules.
"""
from prometheus_client import Counter, Histogram

# HTTP request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

# Error metrics
errors_total = Counter(
    'errors_total',
    'Total errors',
    ['error_type']
)

# Generation metrics
generations_total = Counter(
    'generations_total',
    'Total generations delivered to users',
    ['kind']
)

generations_without_image_total = Counter(
    'generations_without_image_total',
    'Upstream responses that contained no image (not counted toward quota)',
    ['kind']
)

# Quota metrics
quota_rejections_total = Counter(
    'quota_rejections_total',
    'Requests rejected by the daily generation limit',
    ['stage']  # check | record
)

quota_unavailable_total = Counter(
    'quota_unavailable_total',
    'Quota checks that failed and were denied (fail closed)'
)

quota_record_failures_total = Counter(
    'quota_record_failures_total',
    'Delivered generations whose event could not be recorded',
    ['kind']
)

# Upstream provider metrics
ai_provider_requests_total = Counter(
    'ai_provider_requests_total',
    'Total AI provider requests',
    ['provider', 'operation']
)

ai_provider_failures_total = Counter(
    'ai_provider_failures_total',
    'Total AI provider failures',
    ['provider', 'operation']
)

ai_provider_latency_seconds = Histogram(
    'ai_provider_latency_seconds',
    'AI provider request latency in seconds',
    ['provider', 'operation'],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0]
)

ai_provider_tokens_total = Counter(
    'ai_provider_tokens_total',
    'Total AI provider tokens used',
    ['provider', 'operation', 'token_type']
)
