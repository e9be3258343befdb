from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from backoffice.core.errors import BackOfficeError, InvoiceValidationError, error_response
from backoffice.core.logging import RequestLoggingMiddleware, configure_logging
from backoffice.core.observability import PrometheusMiddleware, metrics_endpoint
from backoffice.core.settings import settings
from backoffice.db.session import get_db
from backoffice.routers import invoices

configure_logging(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.project_name, version=settings.project_version)

allow_origin_regex = None
if not settings.is_production:
    allow_origin_regex = r"^http://(localhost|127\.0\.0\.1)(:\d+)?$"
elif any(origin.strip() == "*" for origin in settings.allow_origins):
    raise RuntimeError("ALLOW_ORIGINS cannot include '*' in production")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-Id", "Accept"],
)

app.add_middleware(PrometheusMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["observability"], include_in_schema=False)


@app.exception_handler(BackOfficeError)
async def handle_backoffice_error(request: Request, exc: BackOfficeError):
    return error_response(exc.status_code, exc.message, exc.error)


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    summary = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return error_response(InvoiceValidationError.status_code, InvoiceValidationError.default_message, summary)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


app.include_router(invoices.router)


@app.get("/healthz", tags=["health"])
def healthcheck(db: Session = Depends(get_db)) -> dict[str, str]:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("healthcheck_failed", exc_info=True)
        raise HTTPException(status_code=503, detail="Service indisponible") from exc
    return {"status": "ok", "database": "ok"}
