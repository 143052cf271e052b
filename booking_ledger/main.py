import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError

from booking_ledger.api.v1.availability import router as availability_router
from booking_ledger.api.v1.bookings import router as bookings_router
from booking_ledger.api.v1.packs import router as packs_router
from booking_ledger.api.v1.payments import router as payments_router
from booking_ledger.core.exceptions import http_exception_handler, validation_exception_handler
from booking_ledger.core.logging import setup_logging
from booking_ledger.core.metrics import REQUEST_COUNT, REQUEST_LATENCY, render_metrics
from booking_ledger.core.request_context import request_id_ctx_var

app = FastAPI(title="Booking Ledger", version="0.1.0")
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
setup_logging()
logger = logging.getLogger("booking_ledger.request")

app.include_router(availability_router)
app.include_router(bookings_router)
app.include_router(packs_router)
app.include_router(payments_router)


def _route_template(request: Request) -> str:
    # Label metrics by route template so ids in paths do not explode cardinality.
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def _observe(request: Request, status_code: int, started: float) -> tuple[str, float]:
    elapsed = time.perf_counter() - started
    path = _route_template(request)
    REQUEST_COUNT.labels(method=request.method, path=path, status_code=status_code).inc()
    REQUEST_LATENCY.labels(method=request.method, path=path).observe(elapsed)
    return path, elapsed * 1000


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    token = request_id_ctx_var.set(request_id)
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        path, duration_ms = _observe(request, 500, started)
        logger.exception("request_failed method=%s path=%s status=500 duration_ms=%.2f", request.method, path, duration_ms)
        raise
    else:
        path, duration_ms = _observe(request, response.status_code, started)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed method=%s path=%s status=%s duration_ms=%.2f",
            request.method,
            path,
            response.status_code,
            duration_ms,
        )
        return response
    finally:
        request_id_ctx_var.reset(token)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics", tags=["observability"])
def metrics() -> Response:
    payload, content_type = render_metrics()
    return Response(content=payload, media_type=content_type)
