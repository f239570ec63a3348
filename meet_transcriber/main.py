"""
FastAPI application initialization for the Meet Transcriber API.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meet_transcriber.config import settings
from meet_transcriber.core.logging import setup_logging, get_logger
from meet_transcriber.api.v1.router import api_router

# Setup logging
setup_logging()
logger = get_logger("api")

# Create FastAPI application
app = FastAPI(
    title=settings.project_name,
    version=settings.version,
    description="Schedules a bot into Google Meet meetings and delivers caption transcripts by webhook",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request validation errors as 400 with one message per field."""
    errors = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        errors[field or "body"] = error.get("msg", "Invalid value")
    logger.warning(f"Validation failed for {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Validation failed", "data": errors},
    )


@app.on_event("startup")
async def startup_event():
    """
    Application startup event.
    Create and start the meeting scheduler.
    """
    from meet_transcriber.scheduler import MeetingScheduler
    from meet_transcriber.core.dependencies import set_scheduler_instance

    logger.info("Starting Meet Transcriber API...")

    scheduler = MeetingScheduler()
    scheduler.start()
    set_scheduler_instance(scheduler)

    logger.info("Meet Transcriber API started successfully")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Application shutdown event.
    Stop the scheduler and let running sessions deliver their callbacks.
    """
    from meet_transcriber.core.dependencies import get_scheduler, set_scheduler_instance
    from meet_transcriber.core.exceptions import HTTPInternalServerError

    logger.info("Shutting down Meet Transcriber API...")

    try:
        scheduler = await get_scheduler()
    except HTTPInternalServerError:
        logger.warning("Scheduler was never started")
    else:
        scheduler.stop()
        await scheduler.drain()
        set_scheduler_instance(None)

    logger.info("Meet Transcriber API shutdown complete")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - redirect to the API docs.
    """
    from fastapi.responses import RedirectResponse
    return RedirectResponse(url="/api/docs")
