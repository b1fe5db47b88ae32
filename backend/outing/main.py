"""FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from backend.outing.api.deps import get_services
from backend.outing.api.routes.health import router as health_router
from backend.outing.api.routes.metrics import router as metrics_router
from backend.outing.api.routes.runs import router as runs_router
from backend.outing.config import get_settings
from backend.outing.utils.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(get_settings().log_level)
    yield
    if get_services.cache_info().currsize:
        await get_services().automation.close()


app = FastAPI(title="Outing Planner API", version="0.1.0", lifespan=lifespan)

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(runs_router, tags=["runs"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Outing Planner API", "version": "0.1.0"}


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
