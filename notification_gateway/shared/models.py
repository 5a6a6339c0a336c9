"""
MODULE OVERVIEW:
The typed data structures shared by the gateway, the user service and the CLI,
powered by Pydantic v2.

WHAT IS HAPPENING HERE:
A `NotificationRequest` is what a client POSTs. It is deliberately lenient:
`notification_type` is checked by the dispatcher (so an unknown type becomes a
400 with our own error body instead of a framework 422), and `variables` is
passed through untouched.

A `NotificationEnvelope` is what actually goes on the wire. It is frozen once
built and carries a timestamp assigned by the gateway, never by the client.
"""
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class NotificationType(str, Enum):
    # The value doubles as the routing key. Consumers bind their queues to
    # exactly these strings on the exchange.
    EMAIL = "email"
    PUSH = "push"

    @property
    def routing_key(self) -> str:
        return self.value


def resolve_routing_key(notification_type: Any) -> str | None:
    """Map a raw notification_type to its routing key, or None if it is not one we route."""
    if not isinstance(notification_type, str):
        return None
    try:
        return NotificationType(notification_type).routing_key
    except ValueError:
        return None


class NotificationRequest(BaseModel):
    notification_type: Any = None
    user_id: Any = None
    template_code: Any = None
    variables: Any = None


class NotificationEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: Any
    template_code: Any
    variables: Any
    timestamp: datetime

    @classmethod
    def from_request(cls, request: NotificationRequest, timestamp: datetime) -> "NotificationEnvelope":
        return cls(
            user_id=request.user_id,
            template_code=request.template_code,
            variables=request.variables,
            timestamp=timestamp,
        )

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")


# WHAT IS HAPPENING HERE:
# Every endpoint answers with `success` plus either `message` or `error`.
# Empty fields are dropped when serializing, so a 202 never carries `error: null`.
class ApiResponse(BaseModel):
    success: bool
    message: str | None = None
    error: str | None = None

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class HealthResponse(BaseModel):
    status: str


class UserCreate(BaseModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None

    def is_complete(self) -> bool:
        return bool(self.name and self.email and self.password)


class UserRecord(BaseModel):
    id: int
    name: str
    email: str


class UserCreatedResponse(BaseModel):
    success: bool = True
    message: str = "User created"
    data: UserRecord
