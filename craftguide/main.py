from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from craftguide.core.logging import setup_logging
from craftguide.core.init_db import init_db
from craftguide.api.router import api_router

setup_logging()
logger.info("Starting CraftGuide backend")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Init DB before serving
    init_db()
    yield


app = FastAPI(
    title="CraftGuide Backend",
    version="0.1.0",
    lifespan=lifespan,
)

# Guidance, templates, events, analytics
app.include_router(api_router)


@app.get("/health")
def health():
    logger.debug("Health check hit")
    return {"status": "ok"}
