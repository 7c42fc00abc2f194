import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from exposure.api.routes import get_snapshot_service, router
from exposure.config import load_env

load_env()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    service = get_snapshot_service()
    if os.getenv("API_PREWARM_ENABLED", "1") == "1":
        try:
            service.warmup()
        except Exception as exc:  # pragma: no cover - startup best effort
            logger.warning("SnapshotService warmup skipped due to error: %s", exc)
    yield
    service.close()


app = FastAPI(
    title="Exposure Graph API",
    description="Serves per-asset allocation snapshots, the search index and treemap payloads.",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8001"))
    uvicorn.run("exposure.main:app", host="0.0.0.0", port=port, reload=True)
