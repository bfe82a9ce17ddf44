import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, status
from cafe_inventory.core.db import init_db, close_db
from cafe_inventory.core.container import build_services
from cafe_inventory.api.v1.inventory import router as inventory_router
from cafe_inventory.core.config import LOG_FORMAT, LOG_LEVEL, PROJECT_NAME, VERSION
from cafe_inventory.core.exception_handlers import setup_exception_handlers

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
log = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas
    services = build_services()
    app.state.services = services
    # Items a previous process left mid-batch
    await services.queue.recover_stale_items()
    services.queue.start()
    services.outbox.start()
    yield
    await services.outbox.stop()
    await services.queue.stop()
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.include_router(inventory_router, prefix="/api/v1/inventory", tags=["Inventory Engine"])


setup_exception_handlers(app)

@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
