"""
MODULE OVERVIEW:
The notification intake route.

WHAT IS HAPPENING HERE:
The route is intentionally thin: it hands the parsed body to the dispatcher
living on `app.state` and serializes whatever status and body come back.
All of the gating, validation and publish logic lives in `server/dispatch.py`.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from notification_gateway.server.dispatch import NotificationDispatcher
from notification_gateway.shared.models import ApiResponse, NotificationRequest

router = APIRouter()


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


@router.post(
    "/api/v1/notifications",
    status_code=202,
    response_model=ApiResponse,
    responses={
        400: {"model": ApiResponse},
        500: {"model": ApiResponse},
        503: {"model": ApiResponse},
    },
)
async def create_notification(
    payload: NotificationRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = await dispatcher.dispatch(payload)
    return JSONResponse(status_code=result.status_code, content=result.body)
