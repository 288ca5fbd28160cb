"""Main FastAPI application and server startup."""

import logging

from fastapi import FastAPI
import uvicorn

from adaptive_memory.errors import PersistenceError
from .memory import router as memory_router, close_memory_manager, get_memory_manager
from .schemas import HealthResponse

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Adaptive Memory API",
    description="Per-user memories and rolling session summaries for conversational assistants",
    version="0.1.0",
)

# Include memory router
app.include_router(memory_router, prefix="/api", tags=["memory"])


@app.on_event("shutdown")
async def shutdown_event():
    """Drain background work and close storage."""
    close_memory_manager()


@app.get("/", response_model=dict)
async def root():
    """Root endpoint."""
    return {
        "message": "Adaptive Memory API is running",
        "version": "0.1.0",
    }


@app.get("/health", response_model=HealthResponse)
def health():
    """Health check endpoint."""
    manager = get_memory_manager()
    try:
        storage_ok = manager.health()
    except PersistenceError as e:
        logger.warning("Storage health check failed: %s", e)
        storage_ok = False

    return HealthResponse(
        status="ok" if storage_ok else "degraded",
        components={
            "storage": storage_ok,
            "dispatcher": manager.dispatcher is not None and manager.dispatcher.is_running,
        },
    )


def run():
    """Run the development server."""
    uvicorn.run("adaptive_memory.api.main:app", host="0.0.0.0", port=8000, reload=True)


if __name__ == "__main__":
    run()
