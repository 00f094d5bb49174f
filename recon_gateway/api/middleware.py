"""FastAPI middleware for request context and metrics"""

import uuid
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from recon_gateway.infrastructure.observability.metrics import request_duration_histogram

TENANT_HEADER = "X-Tenant-ID"
REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Attach the reconciliation context to request.state.

    - request_id: the caller's X-Request-ID or a fresh one, echoed back so a
      run can be traced into the ledger webhook
    - tenant_id: the X-Tenant-ID set by the upstream gateway, or None
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.tenant_id = (request.headers.get(TENANT_HEADER) or "").strip() or None

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        if request.state.tenant_id:
            response.headers[TENANT_HEADER] = request.state.tenant_id
        return response


def _endpoint_label(request: Request) -> str:
    # Route template keeps label cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record HTTP request metrics per route"""

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time
        request_duration_histogram.labels(
            method=request.method,
            endpoint=_endpoint_label(request),
            status=response.status_code,
        ).observe(duration)

        return response
