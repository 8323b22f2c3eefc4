"""
FastAPI Dependencies.

Shared dependencies for request handling: database session, request id,
client identity, admin authentication, and the wiring of stores and
collaborators into services.

Process-wide collaborators (classifier, image storage, in-process rate
limit fallback) live on `app.state` and are created in `create_app()`.
"""

import uuid
from datetime import timedelta
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from stickywall.backend.core.config import get_app_config, get_settings
from stickywall.backend.core.database import get_db_session
from stickywall.backend.core.logging import get_logger
from stickywall.backend.core.security import authenticate_admin
from stickywall.backend.repositories.note import NoteRepository, NoteStore
from stickywall.backend.repositories.rate_limit import RateLimitRepository, RateLimitStore
from stickywall.backend.services.classifier import ModerationClassifier
from stickywall.backend.services.identity import ClientIdentity, extract_client_ip, resolve_identity
from stickywall.backend.services.image_storage import ImageStorage
from stickywall.backend.services.moderation import ModerationService
from stickywall.backend.services.note import NoteService
from stickywall.backend.services.rate_limit import RateLimitGate, create_rate_limit_gate
from stickywall.backend.services.submission import SubmissionService

logger = get_logger(__name__)

DbSession = Annotated[AsyncSession, Depends(get_db_session)]


async def get_request_id(request: Request, x_request_id: str | None = Header(None)) -> str:
    """Request ID set by the middleware, else the header, else a fresh one."""
    state_id = getattr(request.state, "request_id", None)
    return state_id or x_request_id or str(uuid.uuid4())


RequestId = Annotated[str, Depends(get_request_id)]


# =============================================================================
# Identity and admin auth
# =============================================================================


def get_client_identity(request: Request) -> ClientIdentity:
    rate_limiting = get_app_config().security.rate_limiting
    ip_address = extract_client_ip(
        request.headers,
        rate_limiting.proxy_headers,
        request.client.host if request.client else None,
    )
    return resolve_identity(
        request.cookies.get(rate_limiting.session_cookie.name),
        ip_address,
        request.cookies.get(rate_limiting.last_submission_cookie.name),
    )


Identity = Annotated[ClientIdentity, Depends(get_client_identity)]


async def require_admin(authorization: str | None = Header(None)) -> None:
    """Bearer admin key check; skipped in development unless enforced."""
    authenticate_admin(authorization)


# =============================================================================
# Stores and collaborators
# =============================================================================


def get_note_store(db: DbSession) -> NoteStore:
    return NoteRepository(db)


def get_rate_limit_store(db: DbSession) -> RateLimitStore:
    return RateLimitRepository(db)


def get_classifier(request: Request) -> ModerationClassifier:
    return request.app.state.classifier


def get_image_storage(request: Request) -> ImageStorage:
    return request.app.state.image_storage


def get_rate_limit_gate(
    request: Request,
    store: Annotated[RateLimitStore, Depends(get_rate_limit_store)],
) -> RateLimitGate:
    rate_limiting = get_app_config().security.rate_limiting
    return create_rate_limit_gate(
        rate_limiting.strategy,
        store=store,
        fallback=request.app.state.rate_limit_fallback,
        salt=get_settings().rate_limit_salt,
        window=timedelta(hours=rate_limiting.window_hours),
    )


NoteStoreDep = Annotated[NoteStore, Depends(get_note_store)]
ImageStorageDep = Annotated[ImageStorage, Depends(get_image_storage)]
RateLimitGateDep = Annotated[RateLimitGate, Depends(get_rate_limit_gate)]


# =============================================================================
# Services
# =============================================================================


def get_note_service(notes: NoteStoreDep) -> NoteService:
    return NoteService(notes, get_app_config().wall)


def get_moderation_service(notes: NoteStoreDep, images: ImageStorageDep) -> ModerationService:
    return ModerationService(
        notes,
        images,
        flag_threshold=get_app_config().moderation.flag_escalation_threshold,
    )


def get_submission_service(
    notes: NoteStoreDep,
    gate: RateLimitGateDep,
    images: ImageStorageDep,
    classifier: Annotated[ModerationClassifier, Depends(get_classifier)],
) -> SubmissionService:
    app_config = get_app_config()
    return SubmissionService(
        notes,
        gate,
        classifier,
        images,
        wall=app_config.wall,
        moderation=app_config.moderation,
        auto_moderation_enabled=app_config.features.auto_moderation_enabled,
        rate_limit_enabled=app_config.features.rate_limit_enabled,
    )
