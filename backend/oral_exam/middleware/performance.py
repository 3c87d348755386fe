import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

perf_logger = logging.getLogger("performance")

# Stage calls wait on speech-to-text and the scorer, so they get their own budget
STAGE_PATHS = ("/api/v1/sessions/transcribe", "/api/v1/sessions/score", "/api/v1/upload/chunk")


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Request latency log lines tagged with a request id."""

    def __init__(self, app, slow_request_threshold: float = 1.0, slow_stage_threshold: float = 60.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold
        self.slow_stage_threshold = slow_stage_threshold

    def threshold_for(self, path: str) -> float:
        if path in STAGE_PATHS:
            return self.slow_stage_threshold
        return self.slow_request_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        request_id = uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            perf_logger.error(
                f"[{request_id}] {request.method} {path} raised {type(e).__name__}: {e} "
                f"after {time.perf_counter() - started:.3f}s"
            )
            raise

        elapsed = time.perf_counter() - started
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        response.headers["X-Request-ID"] = request_id

        threshold = self.threshold_for(path)
        if elapsed > threshold:
            perf_logger.warning(f"[{request_id}] slow {request.method} {path}: {elapsed:.3f}s > {threshold}s")
        else:
            perf_logger.info(f"[{request_id}] {request.method} {path} {response.status_code} {elapsed:.3f}s")
        return response
