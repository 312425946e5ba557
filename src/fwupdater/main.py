"""FastAPI application for the firmware update orchestrator."""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
import uvicorn

from fwupdater.config import load_settings
from fwupdater.utils.logging import setup_logger
from fwupdater.services.item_updater import ItemUpdater
from fwupdater.api.routes import router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown hooks.

    Startup:
    - Load settings and initialize logger
    - Create required directories (upload, media, persist)
    - Build the ItemUpdater and look up inventory anchors
    - Restore field mode from the boot environment
    - Discover images already resident on the device

    Shutdown:
    - Flush priorities and mirror the boot environment
    """
    settings = load_settings()
    logger = setup_logger("fwupdater", settings.LOG_FILE, level=settings.LOG_LEVEL)
    logger.info("fwupdater starting up...")

    directories = [settings.IMG_UPLOAD_DIR, settings.MEDIA_DIR, settings.PERSIST_DIR]
    for directory in directories:
        try:
            Path(directory).mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")
        except OSError as e:
            logger.error(f"Failed to create {directory}: {e}")

    item_updater = ItemUpdater(settings)
    app.state.item_updater = item_updater

    await item_updater.set_inventory_paths()
    await item_updater.restore_field_mode_status()
    item_updater.process_all_images()

    logger.info(
        f"fwupdater ready on port {settings.LISTEN_PORT}: "
        f"{len(item_updater.versions)} version(s) known"
    )

    yield

    logger.info("fwupdater shutting down...")
    item_updater.shutdown()


app = FastAPI(
    title="Firmware Update Orchestrator",
    description="Version and activation lifecycle for BMC, host and auxiliary firmware",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "fwupdater", "version": "1.0.0"}


def main():
    """Main entry point for running the server."""
    settings = load_settings()
    uvicorn.run(
        app,
        host=settings.LISTEN_HOST,
        port=settings.LISTEN_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    main()
