"""
MODULE OVERVIEW:
Postgres access for the user service, on an asyncpg connection pool.

WHAT IS HAPPENING HERE:
The service owns one table. `create_table()` runs at startup and is safe to
run on every boot. `insert_user()` writes a row and returns the public columns.
Passwords are not hashed yet: a fixed placeholder is stored instead.
"""
import asyncpg
from loguru import logger

from notification_gateway.shared.models import UserRecord

PASSWORD_PLACEHOLDER = "hashed_password_placeholder"

CREATE_USERS_TABLE = """
    CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        name VARCHAR(100) NOT NULL,
        email VARCHAR(100) UNIQUE NOT NULL,
        push_token TEXT,
        preferences JSONB,
        password VARCHAR(255) NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
"""

INSERT_USER = (
    "INSERT INTO users(name, email, password) VALUES($1, $2, $3) RETURNING id, name, email"
)


class UserStore:
    def __init__(self, dsn: str):
        self.dsn = dsn
        self._pool: asyncpg.Pool | None = None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("UserStore is not connected")
        return self._pool

    async def connect(self) -> None:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(self.dsn)
            logger.info("user_store event=connect reason=pool_created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def create_table(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(CREATE_USERS_TABLE)
        logger.info("Users table checked/created successfully.")

    async def insert_user(self, name: str, email: str) -> UserRecord:
        # TODO: hash the submitted password once an auth scheme is chosen
        row = await self.pool.fetchrow(INSERT_USER, name, email, PASSWORD_PLACEHOLDER)
        return UserRecord(id=row["id"], name=row["name"], email=row["email"])
