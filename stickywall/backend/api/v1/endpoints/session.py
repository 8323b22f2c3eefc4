"""
Session API Endpoints.

Lets the wall UI ask whether the caller may post before they draw a note.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from stickywall.backend.core.config import get_app_config
from stickywall.backend.core.dependencies import Identity, RequestId, get_rate_limit_gate
from stickywall.backend.core.logging import get_logger
from stickywall.backend.schemas.base import ApiResponse, ResponseMetadata
from stickywall.backend.schemas.note import SessionStatusResponse
from stickywall.backend.services.rate_limit import RateLimitGate

router = APIRouter()
logger = get_logger(__name__)


@router.get(
    "",
    response_model=ApiResponse[SessionStatusResponse],
    summary="Posting eligibility",
)
async def session_status(
    identity: Identity,
    request_id: RequestId,
    gate: Annotated[RateLimitGate, Depends(get_rate_limit_gate)],
) -> ApiResponse[SessionStatusResponse]:
    """
    Report whether the caller can post now, and if not, how long to wait.

    This is advisory only; the submission endpoint enforces the limit. A
    failing check therefore reports `can_post: true` instead of an error.
    """
    status = SessionStatusResponse(can_post=True)

    if get_app_config().features.rate_limit_enabled:
        try:
            decision = await gate.can_post(identity)
        except Exception as e:
            logger.warning("Eligibility check failed", extra={"error": str(e)})
        else:
            status = SessionStatusResponse(
                can_post=decision.can_post,
                reason=decision.reason,
                time_until_next_post=decision.time_until_next_post,
                time_remaining=decision.time_remaining,
            )

    return ApiResponse(data=status, metadata=ResponseMetadata(request_id=request_id))
