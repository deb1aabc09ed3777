'''
FastAPI application: lifespan, middleware, error rendering and routers.
'''
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager

from .database.engine import create_db_engine_and_session_factory, dispose_db_engine, init_models
from .common.exceptions import BookingError
from .common.logger import log
from .common.config import settings
from .api import appointments, client_portal, clients, payments, schedule

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles application startup and shutdown events.
    """
    # --- On App Startup ---
    log.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}...")
    create_db_engine_and_session_factory()
    await init_models()

    yield # --- Application is now running ---

    # --- On App Shutdown ---
    log.info("Application lifespan shutdown...")
    await dispose_db_engine()


# ---- CREATING THE APP ----
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# --- Add CORS Middleware ---
origins = [
    # URL of local frontend
    "http://localhost",
    "http://localhost:3000",
]

# Extend with environment-specific origins
origins.extend(settings.BACKEND_CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],)
# --- End of CORS Middleware ---

# --- Error rendering: every error body is {"error": message} ---

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    log.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None)
    )

@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid request."
    log.warning(f"{request.method} {request.url.path} rejected: {message}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})

@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    log.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"}
    )

@app.get("/")
async def health_check():
    return {"status": "ok", "message": f"{settings.APP_NAME} is running"}

app.include_router(appointments.router)
app.include_router(client_portal.router)
app.include_router(clients.router)
app.include_router(payments.router)
app.include_router(schedule.router)
