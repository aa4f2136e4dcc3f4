import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from storefront.database import engine, create_tables
from storefront.presentation.api import router

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if engine is None:
        logger.warning("POSTGRES_CONNECTION_STRING is not set, storage is unavailable")
    else:
        await create_tables(engine)
        logger.info("Tables ready")

    yield

    if engine is not None:
        await engine.dispose()
    logger.info("Storefront service stopped")


app = FastAPI(
    title="Storefront Cart Service",
    description="Carts, checkout and order tracking",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "healthy"}
