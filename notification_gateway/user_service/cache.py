import redis.asyncio as redis
from loguru import logger


class UserCache:
    """Caches `user:<id>` -> email so delivery workers can skip Postgres."""

    def __init__(self, url: str, ttl_s: int = 3600):
        self.url = url
        self.ttl_s = ttl_s
        self._client: redis.Redis | None = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("UserCache is not connected")
        return self._client

    async def connect(self) -> None:
        if self._client is None:
            self._client = redis.from_url(self.url, decode_responses=True)
            await self._client.ping()
            logger.info("user_cache event=connect reason=ping_ok")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def key_for(user_id: int) -> str:
        return f"user:{user_id}"

    async def remember_email(self, user_id: int, email: str) -> None:
        await self.client.set(self.key_for(user_id), email, ex=self.ttl_s)
