"""
Notes API Endpoints.

Public wall: submit, list (whole wall or a viewport), fetch one, flag.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response

from stickywall.backend.core.config import get_app_config
from stickywall.backend.core.dependencies import (
    Identity,
    RequestId,
    get_moderation_service,
    get_note_service,
    get_submission_service,
)
from stickywall.backend.core.exceptions import ValidationError
from stickywall.backend.core.utils import utc_now
from stickywall.backend.schemas.base import ApiResponse, ResponseMetadata
from stickywall.backend.schemas.note import (
    FlagResponse,
    NoteResponse,
    NoteSubmit,
    NoteSummary,
    SubmissionResponse,
)
from stickywall.backend.services.identity import ClientIdentity
from stickywall.backend.services.moderation import FLAG_THANK_YOU, ModerationService
from stickywall.backend.services.note import NoteService
from stickywall.backend.services.submission import SubmissionRequest, SubmissionService

router = APIRouter()

_SECONDS_PER_DAY = 24 * 60 * 60


def set_submission_cookies(response: Response, identity: ClientIdentity) -> None:
    """Persist the session token and the last-submission time on the client."""
    app_config = get_app_config()
    rate_limiting = app_config.security.rate_limiting
    secure = not app_config.application.is_development

    session_cookie = rate_limiting.session_cookie
    if identity.is_new_session:
        response.set_cookie(
            key=session_cookie.name,
            value=identity.session_id,
            max_age=(session_cookie.max_age_days or 365) * _SECONDS_PER_DAY,
            httponly=True,
            samesite="lax",
            secure=secure,
        )

    last_cookie = rate_limiting.last_submission_cookie
    response.set_cookie(
        key=last_cookie.name,
        value=utc_now().isoformat(),
        max_age=int(rate_limiting.window_hours * 60 * 60),
        httponly=True,
        samesite="lax",
        secure=secure,
    )


@router.post(
    "",
    response_model=ApiResponse[SubmissionResponse],
    status_code=201,
    summary="Submit a note",
    description=(
        "Place a new note on the wall. One note per person per rolling day. "
        "Omit x and y to have a free spot picked near the centre of the wall."
    ),
)
async def submit_note(
    data: NoteSubmit,
    response: Response,
    identity: Identity,
    request_id: RequestId,
    service: Annotated[SubmissionService, Depends(get_submission_service)],
) -> ApiResponse[SubmissionResponse]:
    result = await service.submit(
        SubmissionRequest(image_data=data.image_data, color=data.color, x=data.x, y=data.y),
        identity,
    )
    set_submission_cookies(response, identity)
    return ApiResponse(
        data=SubmissionResponse(
            note=NoteSummary.model_validate(result.note),
            message=result.message,
        ),
        metadata=ResponseMetadata(request_id=request_id),
    )


@router.get(
    "",
    response_model=ApiResponse[list[NoteResponse]],
    summary="List visible notes",
    description="Every approved or pending note, or only those in a viewport when all four bounds are given.",
)
async def list_notes(
    request_id: RequestId,
    service: Annotated[NoteService, Depends(get_note_service)],
    min_x: float | None = Query(default=None),
    max_x: float | None = Query(default=None),
    min_y: float | None = Query(default=None),
    max_y: float | None = Query(default=None),
) -> ApiResponse[list[NoteResponse]]:
    bounds = (min_x, max_x, min_y, max_y)
    if all(b is None for b in bounds):
        notes = await service.list_public()
    elif any(b is None for b in bounds):
        raise ValidationError(
            "Incomplete region bounds",
            details={"bounds": "Provide all of min_x, max_x, min_y, max_y, or none"},
        )
    else:
        notes = await service.list_region(min_x, max_x, min_y, max_y)

    return ApiResponse(
        data=[NoteResponse.model_validate(n) for n in notes],
        metadata=ResponseMetadata(request_id=request_id),
    )


@router.get(
    "/{visible_id}",
    response_model=ApiResponse[NoteResponse],
    summary="Get a note",
)
async def get_note(
    visible_id: str,
    request_id: RequestId,
    service: Annotated[NoteService, Depends(get_note_service)],
) -> ApiResponse[NoteResponse]:
    note = await service.get_public(visible_id)
    return ApiResponse(
        data=NoteResponse.model_validate(note),
        metadata=ResponseMetadata(request_id=request_id),
    )


@router.post(
    "/{visible_id}/flag",
    response_model=ApiResponse[FlagResponse],
    summary="Report a note",
    description="Approved notes are hidden for review once enough reports accumulate.",
)
async def flag_note(
    visible_id: str,
    request_id: RequestId,
    service: Annotated[ModerationService, Depends(get_moderation_service)],
) -> ApiResponse[FlagResponse]:
    result = await service.flag(visible_id)
    return ApiResponse(
        data=FlagResponse(
            visible_id=result.visible_id,
            flag_count=result.flag_count,
            message=FLAG_THANK_YOU,
        ),
        metadata=ResponseMetadata(request_id=request_id),
    )
