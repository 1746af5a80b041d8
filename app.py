# User value: This file runs the local bridge the UI uses to drive mod uploads, AI enhancement and downloads.
# app.py
import os
import logging
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from utils.json_logging import configure_json_logging
from utils.metrics import incr, observe_ms

# Load env before importing modules that read os.getenv at import time.
load_dotenv(os.path.join(os.path.dirname(__file__), ".env"))


# User value: prepares a stable mod-enhancement experience before user actions.
def configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    configure_json_logging(service="modforge-client", level=level)


configure_logging()
logger = logging.getLogger("client.bridge")
from startup_env import validate_startup_env
from utils.request_id import REQUEST_ID_HEADER, get_request_id, normalize_request_id, set_request_id

validate_startup_env()

from routes.auth import router as auth_router
from routes.contract import router as contract_router
from routes.health import router as health_router
from routes.jobs import router as jobs_router
from routes.presets import router as presets_router
from routes.upload import router as upload_router
from services.errors import (
    AlreadyInProgress,
    InvalidState,
    NotFound,
    OrchestratorError,
    RejectedFile,
    ServerRejected,
    TransportError,
)
from services.orchestrator import ModOrchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests may install their own orchestrator before startup.
    orchestrator = getattr(app.state, "orchestrator", None) or ModOrchestrator()
    app.state.orchestrator = orchestrator
    await orchestrator.start()
    try:
        yield
    finally:
        await orchestrator.aclose()
        app.state.orchestrator = None


app = FastAPI(title="ModForge Client Bridge", lifespan=lifespan)


def _parse_csv_env(name: str) -> list[str]:
    values = [x.strip() for x in os.getenv(name, "").split(",") if x.strip()]
    return list(dict.fromkeys(values))


@app.middleware("http")
# User value: supports request_id_middleware so every job event can be traced back to the UI action.
async def request_id_middleware(request: Request, call_next):
    request_id = normalize_request_id(request.headers.get(REQUEST_ID_HEADER))
    set_request_id(request_id)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = int(getattr(response, "status_code", 500))
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        duration_ms = (time.perf_counter() - started) * 1000.0
        method = request.method.upper()
        # Metric label is the route template, not the raw path.
        path = getattr(request.scope.get("route"), "path", request.url.path)
        status_class = f"{status_code // 100}xx"
        incr("bridge_http_requests_total", method=method, path=path, status_class=status_class, status_code=status_code)
        observe_ms("bridge_http_request_latency_ms", duration_ms, method=method, path=path, status_class=status_class)
        set_request_id(None)


_ERROR_STATUS = (
    (NotFound, 404),
    (AlreadyInProgress, 409),
    (InvalidState, 409),
    (RejectedFile, 400),
    (ServerRejected, 502),
    (TransportError, 503),
)

_DEFAULT_ERROR_CODES = {
    400: "INVALID_REQUEST",
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "RESOURCE_NOT_FOUND",
    409: "STATE_CONFLICT",
    503: "SERVICE_UNAVAILABLE",
}


# User value: maps each orchestrator error to the HTTP status the UI shows inline.
def status_for_error(exc: OrchestratorError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _message_from_detail(detail) -> str:
    if isinstance(detail, dict):
        return str(detail.get("error_message") or detail.get("message") or detail)
    if isinstance(detail, list):
        return "; ".join(str(x.get("msg", x)) if isinstance(x, dict) else str(x) for x in detail)
    return str(detail)


# User value: every failed bridge call answers with the same error shape, so the UI renders errors one way.
def _error_response(
    request: Request,
    *,
    status_code: int,
    detail,
    event: str,
    error_code: str | None = None,
    error_message: str | None = None,
) -> JSONResponse:
    if error_code is None and isinstance(detail, dict) and detail.get("error_code"):
        error_code = str(detail["error_code"]).strip().upper()
    body = {
        "error_code": error_code or _DEFAULT_ERROR_CODES.get(status_code, f"HTTP_{status_code}"),
        "error_message": error_message or _message_from_detail(detail),
        "detail": detail,
        "path": request.url.path,
        "request_id": get_request_id() or normalize_request_id(request.headers.get(REQUEST_ID_HEADER)),
    }
    logger.warning(
        "%s status=%s path=%s request_id=%s error_code=%s error_message=%s",
        event,
        status_code,
        body["path"],
        body["request_id"],
        body["error_code"],
        body["error_message"],
    )
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(OrchestratorError)
# User value: reports rejected calls (already processing, not found, wrong state) so the UI can show them inline.
async def orchestrator_exception_handler(request: Request, exc: OrchestratorError):
    return _error_response(
        request,
        status_code=status_for_error(exc),
        detail=exc.to_detail(),
        event="request_rejected",
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    detail = [{k: v for k, v in err.items() if k in ("loc", "msg", "type")} for err in exc.errors()]
    return _error_response(
        request,
        status_code=422,
        detail=detail,
        event="request_failed_validation",
        error_code="VALIDATION_ERROR",
        error_message="Request validation failed",
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(request, status_code=exc.status_code, detail=exc.detail, event="request_failed")


@app.exception_handler(Exception)
# User value: an unexpected bug still returns a readable error instead of a dropped connection.
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("request_failed_unhandled path=%s error=%s: %s", request.url.path, exc.__class__.__name__, exc)
    return _error_response(
        request,
        status_code=500,
        detail="Unhandled bridge exception",
        event="request_failed_unhandled",
        error_code="INTERNAL_SERVER_ERROR",
        error_message="Internal server error",
    )


CORS_ALLOW_ORIGINS = _parse_csv_env("CORS_ALLOW_ORIGINS") or ["http://localhost:5173"]
logger.info("cors_configured allow_origins=%s", CORS_ALLOW_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)

for router in (auth_router, health_router, contract_router, presets_router, upload_router, jobs_router):
    app.include_router(router)
