"""papertray REST API: upload documents and track print jobs over HTTP.

Endpoints::

    GET  /api/health
    GET  /api/print/printers
    POST /api/print/upload            (multipart: file, printerId, copies,
                                       paperSize, duplex, colorMode)
    GET  /api/print/queue/status
    GET  /api/print/task/{task_id}/status
    GET  /api/print/status/{task_id}

Every error response has the same shape::

    {"code": 3001, "message": "Printer not found or unavailable.",
     "timestamp": "2026-01-01T12:00:00"}

FastAPI and uvicorn are optional dependencies.  Install them with::

    pip install papertray[rest]
"""

from __future__ import annotations

import contextlib
import hmac
import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

# Route annotations are resolved against module globals.
from fastapi import UploadFile
from starlette.requests import Request

from papertray import __version__
from papertray.job import JobNotFoundError, JobValidationError
from papertray.printers.base import DiscoveryError, FaultCategory, PrinterError
from papertray.storage import UnsupportedFormatError, UploadTooLargeError

if TYPE_CHECKING:
    from fastapi import FastAPI

    from papertray.config import PapertrayConfig
    from papertray.service import PrintService

logger = logging.getLogger(__name__)

_LOCALHOST_ADDRESSES = {"127.0.0.1", "localhost", "::1"}

# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

SUCCESS = 1000
UNSUPPORTED_FORMAT = 2001
FILE_TOO_LARGE = 2002
FILE_OPERATION_FAILED = 2003
PRINTER_NOT_FOUND = 3001
PRINTER_OFFLINE = 3002
PRINT_SUBMISSION_FAILED = 3003
PAPER_FAULT = 3004
SUPPLIES_LOW = 3005
BAD_REQUEST = 4001
UNAUTHORIZED = 4002
INTERNAL_ERROR = 5000
QUEUE_STATUS_FAILED = 5001

_FAULT_RESPONSES: dict[FaultCategory, tuple[int, int, str]] = {
    FaultCategory.DEVICE_NOT_FOUND: (PRINTER_NOT_FOUND, 404, "Printer not found or unavailable."),
    FaultCategory.DEVICE_OFFLINE: (PRINTER_OFFLINE, 503, "Printer is offline and cannot execute print tasks."),
    FaultCategory.MEDIA_FAULT: (PAPER_FAULT, 503, "Printer reports paper-out or paper jam error."),
    FaultCategory.SUPPLY_FAULT: (SUPPLIES_LOW, 503, "Printer has insufficient printing supplies."),
}


def fault_code(fault: str | None) -> int:
    """Error code for a failed job, from the fault its printer reported."""
    try:
        category = FaultCategory(fault)
    except ValueError:
        return PRINT_SUBMISSION_FAILED
    return _FAULT_RESPONSES.get(category, (PRINT_SUBMISSION_FAILED,))[0]


class ApiError(Exception):
    """An error that maps directly onto an HTTP response."""

    def __init__(self, code: int, message: str, status_code: int) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def error_body(code: int, message: str) -> dict[str, Any]:
    return {"code": code, "message": message, "timestamp": _now()}


def api_error_for(exc: Exception) -> ApiError:
    """Translate a domain exception into the API error it should produce."""
    if isinstance(exc, ApiError):
        return exc
    if isinstance(exc, UploadTooLargeError):
        return ApiError(FILE_TOO_LARGE, str(exc), 413)
    if isinstance(exc, UnsupportedFormatError):
        return ApiError(UNSUPPORTED_FORMAT, str(exc), 400)
    if isinstance(exc, JobNotFoundError):
        return ApiError(BAD_REQUEST, str(exc), 404)
    if isinstance(exc, JobValidationError):
        return ApiError(BAD_REQUEST, f"Invalid request parameters: {exc}", 400)
    if isinstance(exc, PrinterError):
        code, status, message = _FAULT_RESPONSES.get(
            exc.category,
            (PRINT_SUBMISSION_FAILED, 500, f"Print task submission failed: {exc}"),
        )
        return ApiError(code, message, status)
    if isinstance(exc, OSError):
        return ApiError(FILE_OPERATION_FAILED, f"File operation failed: {exc}", 500)
    return ApiError(INTERNAL_ERROR, "An unexpected error occurred.", 500)


_CAMEL_SPLIT = re.compile(r"_([a-z])")


def camelize(data: dict[str, Any]) -> dict[str, Any]:
    """Rename snake_case keys to the camelCase the web client expects."""
    return {_CAMEL_SPLIT.sub(lambda m: m.group(1).upper(), key): value for key, value in data.items()}


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    config: PapertrayConfig | None = None,
    service: PrintService | None = None,
    *,
    manage_scheduler: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Loads ``.env`` from the working directory and ``~/.papertray/.env``
    before resolving configuration.  When *service* is omitted one is
    built from *config*.  With *manage_scheduler* the scheduler starts and
    stops with the application lifespan.
    """
    from pathlib import Path

    from dotenv import load_dotenv

    load_dotenv()
    load_dotenv(Path.home() / ".papertray" / ".env")

    from fastapi import Depends, FastAPI, File, Form
    from fastapi.exceptions import RequestValidationError
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.responses import JSONResponse
    from starlette.exceptions import HTTPException as StarletteHTTPException

    from papertray.config import load_config
    from papertray.service import PrintService

    if config is None:
        config = load_config()
    if service is None:
        service = PrintService.from_config(config)

    @contextlib.asynccontextmanager
    async def lifespan(_app):
        if manage_scheduler:
            service.start()
        try:
            yield
        finally:
            if manage_scheduler:
                service.stop()

    app = FastAPI(
        title="papertray",
        description="Document print queue with a polling scheduler",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=3600,
    )

    # ----- Error handling -------------------------------------------------

    async def _domain_error(request: Request, exc: Exception):
        error = api_error_for(exc)
        if error.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        elif not isinstance(exc, ApiError):
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
        return JSONResponse(error_body(error.code, error.message), status_code=error.status_code)

    for exc_type in (ApiError, JobValidationError, JobNotFoundError, PrinterError, OSError, Exception):
        app.add_exception_handler(exc_type, _domain_error)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())[1:])}: {err.get('msg')}" for err in exc.errors()
        )
        logger.warning("Invalid request parameters: %s", problems)
        return JSONResponse(error_body(BAD_REQUEST, f"Invalid request parameters: {problems}"), status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_request: Request, exc: StarletteHTTPException):
        code = BAD_REQUEST if exc.status_code < 500 else INTERNAL_ERROR
        return JSONResponse(
            error_body(code, str(exc.detail)),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    # ----- Auth dependency ------------------------------------------------

    async def verify_auth(request: Request):
        """Verify Bearer token if auth is configured."""
        if not config.auth_token:
            return
        auth_header = request.headers.get("Authorization", "")
        if not hmac.compare_digest(auth_header, f"Bearer {config.auth_token}"):
            logger.warning("Rejected unauthenticated request: %s %s", request.method, request.url.path)
            raise ApiError(UNAUTHORIZED, "Invalid or missing auth token", 401)

    _auth_dep = Depends(verify_auth)
    _file_upload = File(...)

    # ----- Routes ---------------------------------------------------------

    @app.get("/api/health")
    def health():
        return {
            "status": "ok",
            "version": __version__,
            "scheduler_running": service.scheduler.is_running,
        }

    @app.get("/api/print/printers")
    def list_printers(_=_auth_dep):
        logger.info("Received request to get available printers")
        try:
            devices = service.list_devices()
        except DiscoveryError as exc:
            logger.exception("Error retrieving printers")
            raise ApiError(INTERNAL_ERROR, "Failed to retrieve printer list", 500) from exc
        return [device.to_dict() for device in devices]

    @app.post("/api/print/upload")
    def upload(
        file: UploadFile = _file_upload,
        printerId: str = Form(""),  # noqa: N803
        copies: str = Form("1"),
        paperSize: str = Form("A4"),  # noqa: N803
        duplex: str = Form("simplex"),
        colorMode: str = Form("grayscale"),  # noqa: N803
        _=_auth_dep,
    ):
        # Read one byte past the limit so oversize uploads are detected
        # without buffering an arbitrarily large body.
        data = file.file.read(service.store.max_upload_bytes + 1)
        job = service.submit_upload(
            data,
            file.filename,
            printerId,
            copies=copies,
            paper_size=paperSize,
            duplex=duplex,
            color_mode=colorMode,
        )
        return {
            "code": SUCCESS,
            "taskId": job.id,
            "message": "File uploaded and print task created successfully",
            "timestamp": _now(),
        }

    @app.get("/api/print/queue/status")
    def queue_status(_=_auth_dep):
        try:
            status = service.queue_status()
        except Exception as exc:
            logger.exception("Error retrieving queue status")
            raise ApiError(QUEUE_STATUS_FAILED, "Failed to retrieve queue status", 500) from exc
        return camelize(status)

    def _task_status(task_id: str) -> dict[str, Any]:
        if not task_id.strip():
            raise ApiError(BAD_REQUEST, "Invalid request parameters: Task ID cannot be null or empty", 400)
        body = camelize(service.get_status(task_id))
        if body["status"] == "FAILED":
            body["errorCode"] = fault_code(body.pop("fault"))
        else:
            body.pop("fault")
        return body

    @app.get("/api/print/task/{task_id}/status")
    def task_status(task_id: str, _=_auth_dep):
        return _task_status(task_id)

    @app.get("/api/print/status/{task_id}")
    def task_status_short(task_id: str, _=_auth_dep):
        return _task_status(task_id)

    return app


# ---------------------------------------------------------------------------
# Server runner
# ---------------------------------------------------------------------------


def run_rest_server(config: PapertrayConfig | None = None) -> None:
    """Start the REST API server (blocking)."""
    try:
        import uvicorn
    except ImportError:
        raise ImportError(
            "Uvicorn is required to run the REST server. Install with: pip install papertray[rest]"
        ) from None

    from papertray.config import load_config

    if config is None:
        config = load_config()

    # Refuse to bind to non-localhost without authentication
    if config.host not in _LOCALHOST_ADDRESSES and not config.auth_token:
        raise RuntimeError(
            f"REST API cannot bind to {config.host} without authentication. "
            "Set PAPERTRAY_AUTH_TOKEN=<token> (or pass --auth-token), "
            "or bind to localhost with --host 127.0.0.1"
        )

    app = create_app(config)
    logger.info("Starting papertray REST API on %s:%d", config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port)
