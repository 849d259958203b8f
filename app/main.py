from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from contextlib import asynccontextmanager
from app.configs.app_settings import settings
from app.configs.logging_config import configure_logging
from app.utils.service_handlers import (
    create_marketplace_store,
    close_marketplace_store,
    get_clock,
    get_event_sink,
    get_project_locks,
)
from app.services.project_lifecycle_services import ProjectLifecycle
from app.services.deadline_sweep_services import DeadlineSweeper
from app.routes.project_routes import project_router
from app.routes.bid_routes import bid_router
from app.routes.clerk_webhook_routes import clerk_webhook_router
import asyncio
import contextlib
import logging

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # before yield = code to run during startup
    store = await create_marketplace_store()
    logger.info(f"✅ Marketplace store initialized ({settings.STORAGE_BACKEND})")

    sweep_task = None
    if settings.DEADLINE_SWEEP_ENABLED:
        lifecycle = ProjectLifecycle(store, get_clock(), get_event_sink(), get_project_locks())
        sweeper = DeadlineSweeper(lifecycle, settings.DEADLINE_SWEEP_INTERVAL_SECONDS, settings.AWARD_WINDOW_DAYS)
        sweep_task = asyncio.create_task(sweeper.run_forever())
        logger.info(f"✅ Deadline sweep scheduled every {settings.DEADLINE_SWEEP_INTERVAL_SECONDS}s")

    yield

    # after yield = code to run during shutdown
    if sweep_task is not None:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task
    await close_marketplace_store()
    logger.info("✅ Marketplace store closed")


app = FastAPI(title="BidBuild API", version="1.0.0", lifespan=lifespan)


# Request body / query / path validation errors are answered as 400 like the service-level ValidationError
@app.exception_handler(RequestValidationError)
async def custom_request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors"""
    logger.info(f"Request validation failed on {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": "Validation error", "errors": jsonable_encoder(exc.errors())})


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Adjust this in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(project_router, prefix=settings.API_V1_STR)
app.include_router(bid_router, prefix=settings.API_V1_STR)
app.include_router(clerk_webhook_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": "Welcome to BidBuild API"}
