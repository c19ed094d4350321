"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from chatguard.api import ops
from chatguard.api.errors import install_error_handlers
from chatguard.infra import postgres
from chatguard.moderation import configure as configure_moderation
from chatguard.moderation import configure_postgres as configure_moderation_postgres
from chatguard.moderation import router as moderation_router
from chatguard.moderation import shutdown as shutdown_moderation
from chatguard.obs import init as obs_init
from chatguard.settings import settings, validate_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	validate_settings(settings)
	pool = await postgres.init_pool()
	if pool is not None:
		configure_moderation_postgres(pool)
	else:
		logger.warning("POSTGRES_URL not set; blocked url cache is in-memory only")
		configure_moderation()
	try:
		yield
	finally:
		await shutdown_moderation()
		await postgres.close_pool()


app = FastAPI(title="ChatGuard Moderation", lifespan=lifespan)
install_error_handlers(app)
obs_init(app)

app.include_router(ops.router, tags=["ops"])
app.include_router(moderation_router)
