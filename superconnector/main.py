"""
FastAPI application entrypoint - Star, the AI superconnector chat.
"""

from __future__ import annotations

# Load .env file before other imports
from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager

from fastapi import FastAPI

from superconnector.api.routes import router, shutdown_orchestrator
from superconnector.core.config import settings
from superconnector.core.logging_config import get_logger, setup_logging


setup_logging(settings.log_level)
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Superconnector API starting")
    yield
    await shutdown_orchestrator()
    logger.info("Superconnector API stopped")


app = FastAPI(
    title="Superconnector Chat API",
    description="Guided-dialogue engine that matches founders, investors and talent",
    version="1.0.0",
    debug=settings.debug,
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/config")
async def get_config() -> dict:
    """Get non-sensitive configuration."""
    return settings.to_dict()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
