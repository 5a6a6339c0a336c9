"""
MODULE OVERVIEW:
FastAPI middleware that times every request. Shared by the gateway and the user service.

WHAT IS HAPPENING HERE:
We add an `X-Process-Time-Ms` header so callers can tell time spent inside the
gateway (validation + the AMQP write) apart from network latency.

The gateway has no request timeout. A slow `publish()` only holds up its own
response, so this header is where a stalled broker write shows up first: a
202 that took seconds means the socket buffer to RabbitMQ is backing up. In
the user service the same number is mostly the Postgres insert plus the Redis SET.

The liveness and readiness probes are polled constantly by the orchestrator,
so they get the header but are kept out of the debug log.
"""

import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger

class TimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time_ms:.2f}"

        # Orchestrators hit /health every few seconds; keep it out of the logs
        if request.url.path not in ("/health", "/ready"):
            logger.debug(
                f"{request.method} {request.url.path} status={response.status_code} "
                f"completed in {process_time_ms:.2f}ms"
            )

        return response
