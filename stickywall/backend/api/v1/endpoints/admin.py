"""
Admin API Endpoints.

Moderation queue, stats, and single or batch moderation actions. Every
route requires the admin credential outside development.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from stickywall.backend.core.dependencies import DbSession, RequestId, get_moderation_service, require_admin
from stickywall.backend.models.note import ModerationStatus
from stickywall.backend.schemas.admin import (
    AdminNoteResponse,
    AdminNotesResponse,
    BatchItemResponse,
    BatchModerateRequest,
    BatchModerateResponse,
    ModerateRequest,
    ModerateResponse,
    StatsResponse,
)
from stickywall.backend.schemas.base import ApiResponse, ResponseMetadata
from stickywall.backend.services.moderation import ModerationService

router = APIRouter(dependencies=[Depends(require_admin)])

Moderation = Annotated[ModerationService, Depends(get_moderation_service)]


@router.get(
    "/notes",
    response_model=ApiResponse[AdminNotesResponse],
    summary="Moderation queue",
    description="Notes in any status (or one status) with a stats snapshot.",
)
async def list_notes_for_moderation(
    request_id: RequestId,
    service: Moderation,
    status: ModerationStatus | None = Query(default=None, description="Only notes in this status"),
) -> ApiResponse[AdminNotesResponse]:
    notes = await service.list_for_moderation(status)
    stats = await service.stats()
    return ApiResponse(
        data=AdminNotesResponse(
            notes=[AdminNoteResponse.model_validate(n) for n in notes],
            stats=StatsResponse.model_validate(stats),
        ),
        metadata=ResponseMetadata(request_id=request_id),
    )


@router.get(
    "/stats",
    response_model=ApiResponse[StatsResponse],
    summary="Status counts",
)
async def get_stats(
    request_id: RequestId,
    service: Moderation,
) -> ApiResponse[StatsResponse]:
    stats = await service.stats()
    return ApiResponse(
        data=StatsResponse.model_validate(stats),
        metadata=ResponseMetadata(request_id=request_id),
    )


@router.post(
    "/moderate",
    response_model=ApiResponse[ModerateResponse],
    summary="Moderate one note",
)
async def moderate_note(
    data: ModerateRequest,
    request_id: RequestId,
    service: Moderation,
    db: DbSession,
) -> ApiResponse[ModerateResponse]:
    outcome = await service.moderate(data.note_id, data.action)
    await db.commit()
    await service.release_deleted_images()
    return ApiResponse(
        data=ModerateResponse(
            note_id=outcome.visible_id,
            action=outcome.action,
            moderation_status=outcome.moderation_status,
            deleted=outcome.deleted,
        ),
        metadata=ResponseMetadata(request_id=request_id),
    )


@router.put(
    "/moderate",
    response_model=ApiResponse[BatchModerateResponse],
    summary="Moderate many notes",
    description="Applies one action to each id. Failures are reported per id and do not stop the batch.",
)
async def moderate_batch(
    data: BatchModerateRequest,
    request_id: RequestId,
    service: Moderation,
    db: DbSession,
) -> ApiResponse[BatchModerateResponse]:
    results = await service.moderate_batch(data.note_ids, data.action)
    await db.commit()
    await service.release_deleted_images()
    succeeded = sum(1 for r in results if r.success)
    return ApiResponse(
        data=BatchModerateResponse(
            action=data.action,
            results=[BatchItemResponse.model_validate(r) for r in results],
            succeeded=succeeded,
            failed=len(results) - succeeded,
        ),
        metadata=ResponseMetadata(request_id=request_id),
    )
