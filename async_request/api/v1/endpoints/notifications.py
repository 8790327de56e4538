"""
Notification endpoints. Sending happens in a background request.
"""
import time
from fastapi import APIRouter, Depends, HTTPException, status
from async_request.api.deps import get_dispatcher, require_capability
from async_request.dispatcher import AsyncDispatcher
from async_request.host import RequestContext
from async_request.models.schemas.base import ResponseBase
from async_request.models.schemas.notifications import NotificationCreate
from async_request.transport import DispatchTransportError
from async_request.utils import get_logger, log_performance

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/",
    response_model=ResponseBase,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a notification e-mail"
)
async def send_notification(
    notification: NotificationCreate,
    ctx: RequestContext = Depends(require_capability("manage_options")),
    dispatcher: AsyncDispatcher = Depends(get_dispatcher("email_notify"))
) -> ResponseBase:
    """Hand the notification to a background request and return immediately.

    202 only means the background request was issued; delivery is not tracked.
    """
    start_time = time.time()
    result = await dispatcher.dispatch(notification.model_dump(mode="json"), context=ctx)

    if isinstance(result, DispatchTransportError):
        logger.error(
            "Notification dispatch failed",
            identifier=dispatcher.identifier,
            error=result.message,
            error_type=result.error_type,
            request_id=ctx.request_id
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Background request could not be sent"
        )

    log_performance(
        "notification_dispatch",
        round((time.time() - start_time) * 1000, 2),
        {"identifier": dispatcher.identifier}
    )
    return ResponseBase(
        message="Notification accepted",
        data={
            "identifier": dispatcher.identifier,
            "pending": result.pending,
            "status_code": result.status,
        }
    )
