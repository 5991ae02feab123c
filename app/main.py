from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.v1 import index
from app.api.v1 import shipments
from app.api.v1 import containers
from app.api.v1 import scans
from app.api.v1 import concerns
from app.api.v1 import indexer

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.dependencies import get_ledger
from app.db.core import create_db_and_tables, engine
from app.services.indexer import IndexerWorker

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Development databases; production schemas are managed by Alembic
    create_db_and_tables()

    worker = None
    if settings.indexer_enabled:
        worker = IndexerWorker(engine, get_ledger())
        worker.start()
    app.state.indexer = worker

    yield

    if worker:
        await worker.stop()


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

# Middlewares
origins = []

if settings.allowed_hosts:
    origins = settings.allowed_hosts.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(index.router, prefix="/api/v1")
app.include_router(
    shipments.router, prefix="/api/v1/shipments", tags=["Shipments"])
app.include_router(
    containers.router, prefix="/api/v1/containers", tags=["Containers"])
app.include_router(scans.router, prefix="/api/v1/scans", tags=["Scans"])
app.include_router(
    concerns.router, prefix="/api/v1/concerns", tags=["Concerns"])
app.include_router(
    indexer.router, prefix="/api/v1/indexer", tags=["Indexer"])

# Static files serving (QR codes, supporting documents)
app.mount("/static", StaticFiles(directory=settings.static_dir), name="static")

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=None,
    )
