"""
ChainTrace API — FastAPI Application Entry Point

The detector and the history source are built during start-up, so a bad
model path or an unknown history source stops the process before it takes
traffic instead of failing the first request.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.deps import get_detector, get_history_source
from core.config import get_settings

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    detector = get_detector()
    history = get_history_source()
    app.state.detector = detector
    app.state.history = history
    logger.info(
        "api.startup",
        version=settings.app_version,
        history_source=history.source_type.value,
        topic_id=history.topic_id,
        mirror=settings.mirror_node_url,
        scorer_installed=detector.is_initialized,
        threshold=detector.get_threshold(),
    )
    yield
    detector.dispose()
    logger.info("api.shutdown")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Supply-chain traceability with custody anomaly detection",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from api.v1.routers import anomalies, events

app.include_router(anomalies.router)
app.include_router(events.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.app_version}
