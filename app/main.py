from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api_routers.v1 import api_router
from app.features.health.routes.health import router as health_router
from app.platform.config import settings
from app.platform.exceptions import add_exception_handlers
from app.platform.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    worker = None
    if settings.SCAN_EMBEDDED_WORKER:
        from app.features.scan.dependencies import get_job_queue
        from app.features.scan.workers.worker import build_scan_worker

        worker = build_scan_worker(get_job_queue())
        worker.start()
        logger.info("Embedded scan worker started")
    try:
        yield
    finally:
        if worker is not None:
            worker.stop()


app = FastAPI(
    title="A11y Scan AI API",
    description="Queue-backed accessibility scans with AI remediation suggestions",
    version="1.0.0",
    debug=settings.DEBUG,
    lifespan=lifespan,
)


# Root endpoint for basic info
@app.get("/", tags=["Info"])
def root():
    return {
        "app_name": "A11y Scan AI API",
        "description": "Scans websites for WCAG A/AA violations and suggests fixes.",
        "version": "1.0.0",
        "docs_url": "/docs",
        "api_base": settings.API_V1_PREFIX,
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)

app.include_router(health_router)
app.include_router(api_router, prefix=settings.API_V1_PREFIX)
