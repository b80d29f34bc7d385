"""Prometheus metrics shared by the Lumina handlers and model client."""
from prometheus_client import Counter, Histogram

request_counter = Counter(
    'lumina_requests_total',
    'Total requests to the Lumina command service',
    ['endpoint', 'status']
)
request_duration = Histogram(
    'lumina_request_duration_seconds',
    'Request duration in seconds',
    ['endpoint'],
    buckets=[0.5, 1.0, 2.0, 3.0, 5.0, 7.5, 10.0, 15.0, 20.0, 30.0, 60.0]
)
llm_attempts = Counter(
    'lumina_llm_attempts_total',
    'Claude API attempts by outcome',
    ['kind']
)
