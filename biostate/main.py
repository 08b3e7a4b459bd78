"""
FastAPI application entry point.

    uvicorn biostate.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from biostate.api.routes import router
from biostate.config import LOG_LEVEL
from biostate.core.database import close_connection, init_db

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    close_connection()


app = FastAPI(title="Biological State Engine", version="1.0.0", lifespan=lifespan)
app.include_router(router)
