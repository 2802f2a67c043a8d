import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from stylepath.core.logging import LOGGER_NAME, bound_request_id, latency_bucket_ms


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a request id (incoming header or a fresh uuid4)."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid

        with bound_request_id(rid):
            started = time.perf_counter()
            response = await call_next(request)
            response.headers[self.header_name] = rid

            logging.getLogger(LOGGER_NAME).info(
                "request.complete",
                extra={
                    "request_id": rid,
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket_ms((time.perf_counter() - started) * 1000),
                },
            )
        return response
