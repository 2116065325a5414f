# path: route-enrichment-api/app/main.py

from contextlib import asynccontextmanager
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI

from app.api.routes.routes import router as routes_router
from app.core.config import ENV_PREFIX, EnrichmentConfig
from app.stores.memory_store import MemorySpatialStore
from app.stores.postgis_store import PostgisSpatialStore

load_dotenv()

logging.basicConfig(
    level=os.getenv(ENV_PREFIX + "LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_spatial_store():
    dsn = os.getenv(ENV_PREFIX + "DATABASE_URL")
    if dsn:
        logger.info("Using PostGIS spatial store.")
        return PostgisSpatialStore(dsn)
    path = os.getenv(ENV_PREFIX + "GEOJSON_PATH")
    if path:
        logger.info(f"Using in-memory spatial store from {path}.")
        return MemorySpatialStore.from_geojson_file(path)
    logger.warning("No spatial store configured; enrichment requests will be refused.")
    return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.enrichment_config = EnrichmentConfig.from_env()
    app.state.spatial_store = build_spatial_store()
    yield
    store = app.state.spatial_store
    if isinstance(store, PostgisSpatialStore):
        store.close()


app = FastAPI(title="route-enrichment-api", lifespan=lifespan)

app.include_router(routes_router)
