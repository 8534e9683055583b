# coinvault/obs.py
from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from coinvault.metrics import metrics

logger = logging.getLogger("coinvault.access")


class RequestObservability(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        start = time.perf_counter()
        status = 500
        try:
            response: Response = await call_next(request)
            status = response.status_code
            response.headers["x-request-id"] = req_id
            return response
        finally:
            ms = (time.perf_counter() - start) * 1000
            path = request.url.path
            method = request.method
            metrics.inc("http.requests.total")
            metrics.inc(f"http.status.{status // 100}xx")
            metrics.observe_ms(f"http.latency.{method}.{path}", ms)
            logger.info(json.dumps({
                "req_id": req_id,
                "method": method,
                "path": path,
                "status": status,
                "ms": round(ms, 1),
            }))


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
