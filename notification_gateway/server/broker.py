"""
MODULE OVERVIEW:
The Broker Connection Manager. It owns the single AMQP connection, the single
channel opened on it and the declared `notifications.direct` exchange.

WHAT IS HAPPENING HERE:
`run()` is a supervised background task. It calls `connect()` and, when that
fails, sleeps for whatever the `Backoff` strategy says (5 seconds by default)
and tries again, forever. Once connected it parks on `_lost` until something
notices the connection died, then goes straight back to connecting.

The live handles are bundled into one immutable `BrokerSession`. Reconnecting
builds a brand new session and swaps the reference in one assignment, so a
request handler either sees the old session, the new one, or None. It never
sees half of each.

Loss is detected passively: aio-pika fires our close callbacks when the socket
or channel dies, and `is_ready()` / `publish()` double check `is_closed` on
the handles they are about to trust.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange
from loguru import logger

from notification_gateway.shared.backoff import Backoff, FixedBackoff

EXCHANGE_NAME = "notifications.direct"


class GatewayError(Exception):
    """Base class for errors the gateway translates into HTTP responses."""


class BrokerNotReadyError(GatewayError):
    """Publish attempted while there is no live broker session."""


class PublishError(GatewayError):
    """The write to an open session failed."""


@dataclass(frozen=True)
class BrokerSession:
    connection: AbstractConnection
    channel: AbstractChannel
    exchange: AbstractExchange

    @property
    def is_closed(self) -> bool:
        return self.connection.is_closed or self.channel.is_closed


class BrokerConnectionManager:
    def __init__(
        self,
        url: str,
        exchange_name: str = EXCHANGE_NAME,
        backoff: Backoff | None = None,
        connect_timeout_s: float = 10.0,
        connect_fn: Callable[..., Awaitable[AbstractConnection]] = aio_pika.connect,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.url = url
        self.exchange_name = exchange_name
        self.backoff = backoff or FixedBackoff(5.0)
        self.connect_timeout_s = connect_timeout_s
        self._connect_fn = connect_fn
        self._sleep = sleep

        # The only state shared with request handlers. Replaced, never mutated.
        self._session: BrokerSession | None = None
        # A session that died but whose transport has not been released yet
        self._lost_session: BrokerSession | None = None

        self._lost = asyncio.Event()
        self._supervisor: asyncio.Task | None = None
        self._closing = False

        # In-flight publish tracking so shutdown can drain before closing
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

        self.connect_attempts = 0
        self.consecutive_failures = 0

    # ==========================
    # CONNECT / SUPERVISE
    # ==========================
    async def connect(self) -> bool:
        """
        One connection attempt. Never raises: any failure is logged, the session
        is reset to None and False is returned so the supervisor can schedule a retry.
        """
        self.connect_attempts += 1
        connection = None
        try:
            connection = await self._connect_fn(self.url, timeout=self.connect_timeout_s)
            # No publisher confirms: publishing is fire-and-forget from our side.
            channel = await connection.channel(publisher_confirms=False)
            exchange = await channel.declare_exchange(
                self.exchange_name, ExchangeType.DIRECT, durable=True
            )
        except Exception as e:
            self._session = None
            self.consecutive_failures += 1
            logger.error(
                f"broker event=connect_failed attempt={self.connect_attempts} "
                f"reason='{e!r}'"
            )
            if connection is not None:
                await self._close_quietly(connection)
            return False

        session = BrokerSession(connection=connection, channel=channel, exchange=exchange)
        connection.close_callbacks.add(self._on_closed)
        channel.close_callbacks.add(self._on_closed)

        self._lost.clear()
        self._session = session
        self.consecutive_failures = 0
        logger.info(f"broker event=connect exchange={self.exchange_name} reason=exchange_asserted")
        return True

    async def run(self) -> None:
        """The retry-forever loop. Only cancellation (shutdown) stops it."""
        while True:
            if await self.connect():
                await self._lost.wait()
                logger.warning("broker event=disconnect reason=connection_lost action=reconnect")
                await self._release_lost_session()
                continue

            delay = self.backoff.delay_for(self.consecutive_failures)
            logger.warning(f"broker event=retry_scheduled delay_s={delay:.2f}")
            await self._sleep(delay)

    def start(self) -> asyncio.Task:
        """Spawn the supervisor without waiting for the first connect to succeed."""
        if self._supervisor is None or self._supervisor.done():
            self._closing = False
            self._supervisor = asyncio.create_task(self.run(), name="broker-supervisor")
        return self._supervisor

    async def close(self, drain_timeout_s: float = 5.0) -> None:
        """Stop reconnecting, wait for in-flight publishes, then close the connection."""
        self._closing = True
        if self._supervisor is not None:
            self._supervisor.cancel()
            await asyncio.gather(self._supervisor, return_exceptions=True)
            self._supervisor = None

        try:
            await asyncio.wait_for(self._idle.wait(), timeout=drain_timeout_s)
        except asyncio.TimeoutError:
            logger.warning(f"broker event=drain_timeout in_flight={self._in_flight}")

        await self._release_lost_session()
        session, self._session = self._session, None
        if session is not None:
            await self._close_quietly(session.connection)
        logger.info("broker event=closed reason=shutdown")

    # ==========================
    # READINESS
    # ==========================
    def is_ready(self) -> bool:
        session = self._session
        if session is None:
            return False
        if session.is_closed:
            self._mark_lost(session, "closed_handle_observed")
            return False
        return True

    def _mark_lost(self, session: BrokerSession | None, reason: str) -> None:
        # Only drop the session we actually saw die; a newer one may already be in place.
        if session is not None and self._session is not session:
            return
        if self._session is not None:
            self._lost_session = self._session
            self._session = None
            logger.warning(f"broker event=lost reason={reason}")
        if not self._closing:
            self._lost.set()

    def _on_closed(self, sender: Any, exc: BaseException | None = None) -> None:
        session = self._session
        if session is None:
            return
        if sender is session.connection or sender is session.channel:
            self._mark_lost(session, f"'{exc!r}'" if exc else "closed")

    # ==========================
    # PUBLISH
    # ==========================
    async def publish(self, routing_key: str, body: bytes) -> None:
        """
        Publish `body` under `routing_key`, persistent, exactly once.
        The caller is expected to have checked `is_ready()` first.
        """
        session = self._session
        if session is None:
            raise BrokerNotReadyError("no live broker session")

        message = Message(
            body,
            delivery_mode=DeliveryMode.PERSISTENT,
            content_type="application/json",
            content_encoding="utf-8",
        )

        self._in_flight += 1
        self._idle.clear()
        try:
            await session.exchange.publish(message, routing_key=routing_key)
        except Exception as e:
            if session.is_closed:
                self._mark_lost(session, "publish_on_closed_channel")
            raise PublishError(str(e) or e.__class__.__name__) from e
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

        logger.info(f"broker event=published exchange={self.exchange_name} routing_key={routing_key}")

    async def _release_lost_session(self) -> None:
        # A dead channel can leave its connection open; drop it before replacing it.
        lost, self._lost_session = self._lost_session, None
        if lost is not None and not lost.connection.is_closed:
            await self._close_quietly(lost.connection)

    @staticmethod
    async def _close_quietly(connection: AbstractConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.debug(f"broker event=close_error reason='{e!r}'")
