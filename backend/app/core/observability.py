"""
Logging setup and per-request access logs.

Every response carries X-Correlation-ID and X-Process-Time. Requests that
address a shipment by short id (public receipt, client lookup) are logged
with that short id so one shipment's traffic can be followed end to end.
"""

import re
import time
import uuid
import logging
from typing import Optional
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("receptionist.requests")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

SHORT_ID_IN_PATH = re.compile(r"/shipments/([A-Za-z]{6})(?:/|$)")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once at process start."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # passlib probes optional backends noisily at import time
    logging.getLogger("passlib").setLevel(logging.ERROR)


def short_id_from_path(path: str) -> Optional[str]:
    match = SHORT_ID_IN_PATH.search(path)
    return match.group(1).upper() if match else None


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        started = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}"

        short_id = short_id_from_path(request.url.path)
        log_data = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "short_id": short_id,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "client_ip": request.client.host if request.client else "unknown",
        }
        message = "%s %s -> %d"
        args = (request.method, request.url.path, response.status_code)
        if short_id:
            message += " [shipment %s]"
            args += (short_id,)

        if response.status_code >= 500:
            logger.error(message, *args, extra=log_data)
        elif response.status_code >= 400:
            logger.warning(message, *args, extra=log_data)
        else:
            logger.info(message, *args, extra=log_data)

        return response
