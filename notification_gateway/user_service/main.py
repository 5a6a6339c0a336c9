"""
MODULE OVERVIEW:
The user service: a small FastAPI app next to the gateway that registers
users in Postgres and warms the Redis cache the delivery workers read from.

WHAT IS HAPPENING HERE:
Unlike the gateway, this service refuses to start without its backing
stores. The lifespan connects the pool and the cache and makes sure the
`users` table exists before Uvicorn opens the port.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from notification_gateway.server.middleware import TimingMiddleware
from notification_gateway.shared.config import Settings, settings as default_settings
from notification_gateway.shared.models import HealthResponse, UserCreate, UserCreatedResponse
from notification_gateway.user_service.cache import UserCache
from notification_gateway.user_service.store import UserStore

VALIDATION_FAILED = {
    "error": "Validation failed",
    "message": "name, email, and password are required",
}


async def user_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Wrong types and unparsable JSON are the same failure as missing fields
    logger.info(f"{request.method} {request.url.path} rejected reason=invalid_body errors={len(exc.errors())}")
    return JSONResponse(status_code=400, content=VALIDATION_FAILED)


def create_user_app(
    settings: Settings | None = None,
    store: UserStore | None = None,
    cache: UserCache | None = None,
) -> FastAPI:
    settings = settings or default_settings
    store = store or UserStore(settings.DATABASE_URL)
    cache = cache or UserCache(settings.REDIS_URL, ttl_s=settings.USER_CACHE_TTL_S)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("User service starting up...")
        await store.connect()
        await cache.connect()
        await store.create_table()

        yield

        await cache.close()
        await store.close()
        logger.info("User service shutdown complete.")

    app = FastAPI(title="User Service", version="1.0.0", lifespan=lifespan)
    app.add_middleware(TimingMiddleware)
    app.add_exception_handler(RequestValidationError, user_validation_handler)

    @app.get("/health", response_model=HealthResponse, tags=["Ops"])
    async def health_check():
        return {"status": "ok"}

    @app.get("/", tags=["Ops"])
    async def root():
        return {"hello": "from user-service"}

    @app.post("/api/v1/users", status_code=201, response_model=UserCreatedResponse, tags=["Users"])
    async def create_user(payload: UserCreate):
        if not payload.is_complete():
            return JSONResponse(status_code=400, content=VALIDATION_FAILED)

        try:
            user = await store.insert_user(payload.name, payload.email)
            await cache.remember_email(user.id, user.email)
        except Exception as e:
            logger.error(f"user_service event=create_failed reason='{e}'")
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": "Internal server error", "message": str(e)},
            )

        logger.info(f"user_service event=created user_id={user.id}")
        return UserCreatedResponse(data=user)

    return app


app = create_user_app()
