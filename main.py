from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from exceptions import (
    ChartCacheError,
    ChartCalculationError,
    ChartMappingError,
    DateCompositionError,
    InvalidCoordinatesError,
    UnknownTimezoneError,
)
from logging_config import setup_logging
from routers import router
from settings import get_settings

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    log.info("app_startup", app=settings.APP_NAME, env=settings.APP_ENV)
    yield


app = FastAPI(
    title="Natal Chart API",
    description="Natal chart calculation and caching using Swiss Ephemeris",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, exc: Exception, detail=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "message": str(exc),
            "detail": detail
        }
    )


# Exception Handlers
@app.exception_handler(UnknownTimezoneError)
async def unknown_timezone_handler(request: Request, exc: UnknownTimezoneError):
    """Handle unknown timezone errors."""
    return _error(422, exc, {"timezone": exc.identifier})


@app.exception_handler(DateCompositionError)
async def date_composition_handler(request: Request, exc: DateCompositionError):
    """Handle birth date/time that cannot form an instant."""
    return _error(422, exc)


@app.exception_handler(InvalidCoordinatesError)
async def invalid_coordinates_handler(request: Request, exc: InvalidCoordinatesError):
    """Handle invalid coordinates errors."""
    return _error(422, exc)


@app.exception_handler(ChartMappingError)
async def chart_mapping_handler(request: Request, exc: ChartMappingError):
    """Handle malformed or unmapped provider data."""
    return _error(422, exc)


@app.exception_handler(ChartCalculationError)
async def chart_calculation_error_handler(request: Request, exc: ChartCalculationError):
    """Handle chart calculation errors."""
    log.error("chart_calculation_failed", path=request.url.path, error=str(exc))
    return _error(500, exc)


@app.exception_handler(ChartCacheError)
async def chart_cache_error_handler(request: Request, exc: ChartCacheError):
    """Handle chart cache errors."""
    log.error("chart_cache_failed", path=request.url.path, error=str(exc))
    return _error(500, exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": jsonable_errors(exc)
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raised exception object
    return [
        {key: value for key, value in err.items() if key != "ctx"}
        for err in exc.errors()
    ]


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other unexpected exceptions."""
    log.exception("unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "detail": None
        }
    )


# Include API router
app.include_router(router, prefix="/api/v1", tags=["API"])


# Root endpoints
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": "Natal Chart API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}
