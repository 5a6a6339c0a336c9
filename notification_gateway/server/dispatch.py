r"""
MODULE OVERVIEW:
The Notification Dispatch Handler. It turns one inbound request into at most
one durable publish and maps every outcome onto an HTTP status.

WHAT IS HAPPENING HERE:
Each request walks the same path exactly once:

    Received -> Validated -> Gated -> Published -> Accepted (202)
                    |            |            \-> PublishFailed (500)
                    |            \-> Unavailable (503)
                    \-> Rejected (400)

Nothing here retries. If the broker is down the client gets a 503 and is
expected to try again; the connection manager is the only component that
recovers on its own.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger

from notification_gateway.server.broker import BrokerConnectionManager, BrokerNotReadyError
from notification_gateway.shared.models import (
    ApiResponse,
    NotificationEnvelope,
    NotificationRequest,
    resolve_routing_key,
)

ACCEPTED = ApiResponse(success=True, message="Notification request accepted")
INVALID_TYPE = ApiResponse(success=False, error="Invalid notification_type")
NOT_READY = ApiResponse(success=False, error="Message service not ready")
INTERNAL_ERROR = ApiResponse(success=False, error="Internal server error")


@dataclass(frozen=True)
class DispatchResult:
    status_code: int
    response: ApiResponse

    @property
    def body(self) -> dict[str, Any]:
        return self.response.to_body()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationDispatcher:
    def __init__(self, broker: BrokerConnectionManager, clock: Callable[[], datetime] = utc_now):
        self.broker = broker
        self._clock = clock
        self._last_timestamp: datetime | None = None

    def _next_timestamp(self) -> datetime:
        # Wall clocks can step backwards (NTP). Envelope timestamps from one
        # dispatcher never do.
        now = self._clock()
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    async def dispatch(self, request: NotificationRequest) -> DispatchResult:
        routing_key = resolve_routing_key(request.notification_type)
        if routing_key is None:
            logger.info(f"dispatch event=rejected notification_type={request.notification_type!r}")
            return DispatchResult(400, INVALID_TYPE)

        if not self.broker.is_ready():
            logger.warning(f"dispatch event=unavailable routing_key={routing_key} reason=broker_not_ready")
            return DispatchResult(503, NOT_READY)

        envelope = NotificationEnvelope.from_request(request, timestamp=self._next_timestamp())

        try:
            await self.broker.publish(routing_key, envelope.to_bytes())
        except BrokerNotReadyError:
            # The session vanished between the gate and the write.
            logger.warning(f"dispatch event=unavailable routing_key={routing_key} reason=session_lost")
            return DispatchResult(503, NOT_READY)
        except Exception as e:
            logger.error(f"dispatch event=publish_failed routing_key={routing_key} reason='{e}'")
            return DispatchResult(500, INTERNAL_ERROR)

        return DispatchResult(202, ACCEPTED)
