"""friendradar FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from friendradar.api import friends, health, location, presence, sos, ws
from friendradar.core.config import settings
from friendradar.core.presence import PresenceBroadcaster
from friendradar.services.engine import PresenceEngine

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    broadcaster = PresenceBroadcaster()
    broadcaster.start()
    app.state.broadcaster = broadcaster
    app.state.engine = PresenceEngine(broadcaster, nearby_threshold_m=settings.nearby_threshold_m)
    logger.info("Presence engine ready (nearby threshold %sm)", settings.nearby_threshold_m)
    yield
    broadcaster.close()


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(location.router)
app.include_router(friends.router)
app.include_router(presence.router)
app.include_router(sos.router)
app.include_router(ws.router)
