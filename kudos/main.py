from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from kudos.config import Settings
from kudos.controllers import v1
from kudos.db import init_db
from kudos.logger import setup_logging
from kudos.scheduler.weekly_reset_scheduler import (
    start_weekly_reset_scheduler,
    stop_weekly_reset_scheduler,
)

settings = Settings()
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await asyncio.to_thread(init_db, settings)
    start_weekly_reset_scheduler(settings.weekly_reset_interval_s)
    yield
    stop_weekly_reset_scheduler()


app = FastAPI(
    title="Kudos Point Ledger API",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(v1.router)

Instrumentator().instrument(app).expose(app)
