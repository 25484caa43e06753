# =======================================================================================
# app/main.py - FastAPI Application Entry Point
# =======================================================================================
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .config import config
from .api.routes.auth import router as auth_router
from .api.routes.doors import router as doors_router
from .api.routes.alerts import router as alerts_router
from .api.routes.push_tokens import router as push_tokens_router
from .api.routes.access_logs import router as access_logs_router
from .database import db_manager
from .logging_config import setup_logging
from .models.schemas import HealthResponse
from .services.context import DoorContext
from .services.event_router import EventRouter
from .utils.exceptions import DoorAccessError
from .workers.mqtt_worker import MqttWorker, OfflineSweeper

logger = logging.getLogger(__name__)


def create_app(context: Optional[DoorContext] = None) -> FastAPI:
    # The broker connection is only owned by the app when no context is injected
    worker: Optional[MqttWorker] = None
    if context is None:
        worker = MqttWorker()
        context = DoorContext(db_manager, worker)
    event_router = EventRouter(context)
    sweeper = OfflineSweeper(event_router)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        context.db.create_all()
        with context.transaction() as conn:
            context.doors.get_or_create_door(conn)

        if worker is not None and config.MQTT_ENABLED:
            worker.attach(event_router)
            worker.start()
            sweeper.start()
        logger.info("Smart Home Door Access API started")
        yield
        sweeper.stop()
        if worker is not None:
            worker.stop()

    app = FastAPI(
        title="Smart Home Door Access API",
        version="1.0.0",
        description="Door access control backend: RFID/PIN authentication, enrollment, alerts",
        debug=config.API_DEBUG,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.door_context = context
    app.state.event_router = event_router
    app.state.mqtt_worker = worker

    # Routers
    app.include_router(auth_router, prefix="/api", tags=["auth"])
    app.include_router(doors_router, prefix="/api", tags=["doors"])
    app.include_router(alerts_router, prefix="/api", tags=["alerts"])
    app.include_router(push_tokens_router, prefix="/api", tags=["push"])
    app.include_router(access_logs_router, prefix="/api", tags=["access-logs"])

    @app.exception_handler(DoorAccessError)
    async def door_access_error_handler(request: Request, exc: DoorAccessError):
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

    @app.get("/api/health", response_model=HealthResponse, tags=["health"])
    def api_health():
        mqtt_connected = bool(worker and worker.connected)
        try:
            context.db.fetch_one("SELECT 1")
            return HealthResponse(status="ok", dataAvailable=True, mqttConnected=mqtt_connected)
        except Exception as e:
            return HealthResponse(
                status="error", dataAvailable=False, mqttConnected=mqtt_connected, message=str(e)
            )

    # to keep old /health for backwards compatibility
    @app.get("/health")
    def legacy_health():
        return {"status": "ok"}

    return app


app = create_app()
