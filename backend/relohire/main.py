import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from relohire.celery_app import BROKER_CONFIGURED
from relohire.core.config import require_jwt_secret, settings
from relohire.core.errors import AppError
from relohire.routes.admin import router as admin_router
from relohire.routes.applications import router as applications_router
from relohire.routes.auth import router as auth_router
from relohire.routes.companies import router as companies_router
from relohire.routes.dashboard import router as dashboard_router
from relohire.routes.exam import router as exam_router
from relohire.routes.jobs import router as jobs_router
from relohire.routes.payments import router as payments_router
from relohire.routes.questions import router as questions_router
from relohire.routes.workflow import router as workflow_router

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

require_jwt_secret()

app = FastAPI(title="ReloHire API")
logger.info(
    "Startup config: EMAIL_ENABLED=%s provider=%s cache=%s exchange_rates=%s celery=%s",
    settings.EMAIL_ENABLED,
    (settings.EMAIL_PROVIDER or "resend"),
    "redis" if settings.REDIS_URL else "memory",
    settings.EXCHANGE_RATE_PROVIDER,
    "broker" if BROKER_CONFIGURED else "inline",
)

_ERROR_CODE_BY_STATUS: dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    402: "PAYMENT_REQUIRED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
}


def _error_code(status_code: int) -> str:
    return _ERROR_CODE_BY_STATUS.get(int(status_code), "HTTP_ERROR")


def _error_body(code: str, message: str, details: dict | None = None) -> dict:
    payload: dict = {"success": False, "error": code, "message": message}
    if details:
        payload["details"] = details
    return payload


@app.exception_handler(AppError)
def app_error_handler(request: Request, exc: AppError):  # noqa: ARG001
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.message, exc.details),
    )


@app.exception_handler(StarletteHTTPException)
def http_exception_handler(request: Request, exc: StarletteHTTPException):  # noqa: ARG001
    detail = exc.detail
    message: str
    details: dict | None = None

    if isinstance(detail, str):
        message = detail
    elif isinstance(detail, dict):
        # HTTPException(detail={"message": "...", "details": {...}})
        msg = detail.get("message")
        message = msg if isinstance(msg, str) and msg else "Request failed"
        det = detail.get("details")
        details = det if isinstance(det, dict) else None
    else:
        message = str(detail) if detail is not None else "Request failed"

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(_error_code(exc.status_code), message, details),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError):  # noqa: ARG001
    return JSONResponse(
        status_code=422,
        content=_error_body("VALIDATION_ERROR", "Invalid request payload", {"errors": _jsonable_errors(exc)}),
    )


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=_error_body("INTERNAL_ERROR", "Internal server error"))


def _jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # pydantic may put exception instances in "ctx"; stringify them.
    out = []
    for err in exc.errors():
        item = dict(err)
        if "ctx" in item:
            item["ctx"] = {k: str(v) for k, v in (item["ctx"] or {}).items()}
        item.pop("input", None)
        out.append(item)
    return out


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (
    auth_router,
    jobs_router,
    applications_router,
    workflow_router,
    payments_router,
    exam_router,
    questions_router,
    companies_router,
    dashboard_router,
    admin_router,
):
    app.include_router(router, prefix=settings.API_PREFIX)


@app.get("/health")
def health_check():
    return {"status": "ok"}
