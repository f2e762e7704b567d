"""
TripSync - Group Trip Coordination Backend
Main application entry point
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from tripsync.api import routes_groups, routes_payments, routes_public, routes_trips, ws
from tripsync.core.config import Settings, settings as default_settings
from tripsync.core.db import Store
from tripsync.core.errors import TripSyncError
from tripsync.realtime.broadcaster import RoomBroadcaster
from tripsync.realtime.handlers import GroupEventHandlers
from tripsync.realtime.registry import ConnectionRegistry
from tripsync.services.calendar_service import CalendarService
from tripsync.services.group_service import GroupService
from tripsync.services.membership_service import MembershipService
from tripsync.services.payment_service import PaymentService
from tripsync.services.trip_service import TripService
from tripsync.utils.responses import domain_error_handler
from tripsync.utils.security import StaticTokenResolver

# Configure logging
logging.basicConfig(
    level=default_settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

def create_app(settings: Optional[Settings] = None, store: Optional[Store] = None) -> FastAPI:
    """Build the application with its own store, broadcaster and services"""
    settings = settings or default_settings
    store = store or Store.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management"""
        store.create_all()
        logger.info("Database tables created")
        await app.state.broadcaster.start()
        yield
        await app.state.broadcaster.shutdown()
        app.state.registry.clear()
        store.dispose()
        logger.info("Application shutdown")

    app = FastAPI(
        title="TripSync",
        description="Group trip coordination backend with real-time rooms",
        version="1.0.0",
        lifespan=lifespan
    )

    broadcaster = RoomBroadcaster()
    registry = ConnectionRegistry()

    app.state.settings = settings
    app.state.store = store
    app.state.broadcaster = broadcaster
    app.state.registry = registry
    app.state.identity_resolver = StaticTokenResolver(settings.AUTH_TOKENS)
    app.state.group_service = GroupService(store)
    app.state.membership_service = MembershipService(store)
    app.state.trip_service = TripService(store)
    app.state.payment_service = PaymentService(store)
    app.state.calendar_service = CalendarService(store)
    app.state.event_handlers = GroupEventHandlers(
        broadcaster,
        registry,
        groups=app.state.group_service,
        membership=app.state.membership_service,
        calendar=app.state.calendar_service,
        trips=app.state.trip_service,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TripSyncError, domain_error_handler)

    # Include routers
    app.include_router(routes_public.router, tags=["public"])
    app.include_router(routes_groups.router, prefix="/groups", tags=["groups"])
    app.include_router(routes_trips.router, prefix="/trips", tags=["trips"])
    app.include_router(routes_payments.router, prefix="/payments", tags=["payments"])
    app.include_router(ws.router, prefix="/ws", tags=["websocket"])

    return app

app = create_app()

# Note: Run this ASGI app directly with Uvicorn or Hypercorn. For Gunicorn,
# use `uvicorn.workers.UvicornWorker` instead of wrapping the app.

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=True
    )
