"""
MODULE OVERVIEW:
The FastAPI application factory for the notification gateway.

WHAT IS HAPPENING HERE:
We use a `lifespan` context manager. When Uvicorn starts the server we spawn
the broker supervisor as an `asyncio` background task and immediately yield,
so the HTTP port opens even while RabbitMQ is still unreachable (requests get
a 503 until the first connect succeeds). On shutdown the lifespan cancels the
supervisor, lets in-flight publishes finish and closes the AMQP connection.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from loguru import logger

from notification_gateway.server.broker import BrokerConnectionManager
from notification_gateway.server.dispatch import NotificationDispatcher
from notification_gateway.server.errors import register_error_handlers
from notification_gateway.server.middleware import TimingMiddleware
from notification_gateway.server.routes import notifications
from notification_gateway.shared.backoff import backoff_from_settings
from notification_gateway.shared.config import Settings, settings as default_settings
from notification_gateway.shared.models import HealthResponse


def build_broker(settings: Settings) -> BrokerConnectionManager:
    return BrokerConnectionManager(
        settings.RABBITMQ_URL,
        exchange_name=settings.EXCHANGE_NAME,
        backoff=backoff_from_settings(settings),
        connect_timeout_s=settings.BROKER_CONNECT_TIMEOUT_S,
    )


def create_app(settings: Settings | None = None, broker: BrokerConnectionManager | None = None) -> FastAPI:
    settings = settings or default_settings
    broker = broker or build_broker(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # STARTUP
        logger.info("Notification gateway starting up...")
        broker.start()
        logger.info(f"Broker supervisor started exchange={settings.EXCHANGE_NAME}")

        yield

        # SHUTDOWN
        logger.info("Gateway shutting down. Draining broker publishes...")
        await broker.close(drain_timeout_s=settings.BROKER_DRAIN_TIMEOUT_S)
        logger.info("Shutdown complete.")

    app = FastAPI(
        title="Notification Gateway",
        description="Accepts notification requests and publishes them to RabbitMQ",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.broker = broker
    app.state.dispatcher = NotificationDispatcher(broker)

    app.add_middleware(TimingMiddleware)
    register_error_handlers(app)

    app.include_router(notifications.router, tags=["Notifications"])

    @app.get("/health", response_model=HealthResponse, tags=["Ops"])
    async def health_check():
        # Liveness only: stays 200 while the broker is down
        return {"status": "ok"}

    @app.get("/ready", response_model=HealthResponse, tags=["Ops"])
    async def readiness_check():
        if broker.is_ready():
            return {"status": "ready"}
        return JSONResponse(status_code=503, content={"status": "not_ready"})

    return app


app = create_app()
