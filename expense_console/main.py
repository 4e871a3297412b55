import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from expense_console.api.v1.categories import router as categories_router
from expense_console.api.v1.currency import router as currency_router
from expense_console.api.v1.expenses import router as expenses_router
from expense_console.api.v1.files import router as files_router
from expense_console.api.v1.imports import router as imports_router
from expense_console.api.v1.notifications import router as notifications_router
from expense_console.api.v1.reports import router as reports_router
from expense_console.api.v1.session import router as session_router
from expense_console.api.v1.ui import router as ui_router
from expense_console.api.v1.vendors import router as vendors_router
from expense_console.core.config import get_settings
from expense_console.core.errors import CLIENT_ERROR, ApiError, http_status_for, user_friendly_message
from expense_console.core.state import init_app_state
from expense_console.services.refresh_jobs import start_refresh_worker

settings = get_settings()
_refresh_task = None

logger = logging.getLogger(__name__)

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
}

app = FastAPI(
    title="Expense Console",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)


@app.on_event("startup")
async def _startup():
    global _refresh_task
    state = init_app_state(app)
    if _refresh_task is None:
        _refresh_task = start_refresh_worker(state)


@app.on_event("shutdown")
async def _shutdown():
    global _refresh_task
    if _refresh_task is not None:
        _refresh_task.cancel()
        _refresh_task = None
    state = getattr(app.state, "console", None)
    if state is not None:
        await state.aclose()
        app.state.console = None


if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(session_router, prefix="/api/v1", tags=["session"])
app.include_router(ui_router, prefix="/api/v1", tags=["ui"])
app.include_router(expenses_router, prefix="/api/v1", tags=["expenses"])
app.include_router(categories_router, prefix="/api/v1", tags=["categories"])
app.include_router(vendors_router, prefix="/api/v1", tags=["vendors"])
app.include_router(files_router, prefix="/api/v1", tags=["files"])
app.include_router(notifications_router, prefix="/api/v1", tags=["notifications"])
app.include_router(reports_router, prefix="/api/v1", tags=["reports"])
app.include_router(currency_router, prefix="/api/v1", tags=["currency"])
app.include_router(imports_router, prefix="/api/v1", tags=["import"])


@app.exception_handler(ApiError)
async def _api_error_handler(request: Request, exc: ApiError):
    status_code = http_status_for(exc)
    if status_code >= 500:
        logger.warning("Backend failure on %s %s: %r", request.method, request.url.path, exc)
    body = exc.to_dict()
    body.pop("status", None)
    if exc.backend_message is None and exc.code != CLIENT_ERROR:
        body["message"] = user_friendly_message(exc)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    # 5xx detail stays hidden unless expose_error_details is set
    if exc.status_code >= 500 and not get_settings().expose_error_details:
        return JSONResponse(status_code=exc.status_code, content={"detail": "An unexpected error occurred."})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    if get_settings().expose_error_details:
        return JSONResponse(status_code=500, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": "An unexpected error occurred."})


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if not settings.security_headers_enabled:
        return response

    if request.url.path.startswith("/api/v1"):
        response.headers.setdefault("Cache-Control", "no-store")
    for name, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


@app.get("/health")
async def health_check():
    return {"status": "ok"}
