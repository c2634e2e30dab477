from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from file_registry_service.blob_store import LocalBlobStore
from file_registry_service.broadcaster import Broadcaster
from file_registry_service.config import Settings, settings
from file_registry_service.logging_config import get_logger
from file_registry_service.registry import FileRegistry
from file_registry_service.routers import events as events_router
from file_registry_service.routers import files as files_router
from file_registry_service.stores import build_metadata_store

logger = get_logger(__name__)

def build_registry(current_settings: Settings, broadcaster: Broadcaster) -> FileRegistry:
    return FileRegistry(
        store=build_metadata_store(current_settings),
        blobs=LocalBlobStore(current_settings.STORAGE_BASE_PATH),
        broadcaster=broadcaster,
        max_upload_bytes=current_settings.max_file_size_bytes,
        share_link_attempts=current_settings.SHARE_LINK_MAX_ATTEMPTS,
        public_base_url=current_settings.PUBLIC_BASE_URL,
        recent_limit=current_settings.RECENT_UPLOADS_LIMIT,
    )

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("File Registry Service starting up...")
    broadcaster = Broadcaster(queue_size=settings.SUBSCRIBER_QUEUE_SIZE)
    registry = build_registry(settings, broadcaster)
    await registry.store.initialize()
    app.state.broadcaster = broadcaster
    app.state.registry = registry
    logger.info(f"File storage path configured at: {settings.STORAGE_BASE_PATH}")
    logger.info(f"Metadata backend: {settings.METADATA_BACKEND}")
    if not settings.GATEWAY_SECRET:
        logger.warning(
            "GATEWAY_SECRET is not set, so X-Principal-* headers are trusted from any client. "
            "Only expose this service behind the auth gateway."
        )
    yield
    logger.info("File Registry Service shutting down...")
    await registry.store.close()

app = FastAPI(
    title="File Registry Service",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(files_router.router)
app.include_router(events_router.router)

@app.get("/ping", tags=["Health"])
async def ping():
    return {"ping": "pong! from the file registry"}

@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting File Registry Service on {settings.HOST}:{settings.PORT}")
    uvicorn.run("file_registry_service.main:app", host=settings.HOST, port=settings.PORT)
