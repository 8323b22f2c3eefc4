"""
Unit Tests for the Submission Service.

Runs the full pipeline against in-memory stores, the inline image backend
and a stubbed classifier.
"""

import random
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import aiobreaker
import pytest

from stickywall.backend.core.exceptions import (
    OverlapError,
    RateLimitError,
    UploadError,
    ValidationError,
)
from stickywall.backend.repositories.memory import InMemoryNoteStore, InMemoryRateLimitStore
from stickywall.backend.services.classifier import (
    GenerationResult,
    ModerationClassifier,
    ModerationVerdict,
)
from stickywall.backend.services.identity import ClientIdentity
from stickywall.backend.services.image_storage import InlineImageStorage
from stickywall.backend.services.rate_limit import HashedIdentityRateLimitGate
from stickywall.backend.services.submission import (
    APPROVED_MESSAGE,
    PENDING_MESSAGE,
    SubmissionRequest,
    SubmissionService,
    status_message,
)

WINDOW = timedelta(hours=24)
WHO = ClientIdentity(session_id="session-abc", ip_address="203.0.113.9")


def verdict(approved: bool, confidence: float, reason: str = "ok") -> ModerationVerdict:
    return ModerationVerdict(approved=approved, reason=reason, confidence=confidence)


def stub_classifier(result: ModerationVerdict) -> MagicMock:
    classifier = MagicMock()
    classifier.classify = AsyncMock(return_value=result)
    return classifier


class FailingGenerator:
    async def generate(self, image: str, prompt: str) -> GenerationResult:
        raise RuntimeError("classifier offline")


@pytest.fixture
def notes() -> InMemoryNoteStore:
    return InMemoryNoteStore()


@pytest.fixture
def rate_store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


@pytest.fixture
def gate(rate_store, clock) -> HashedIdentityRateLimitGate:
    return HashedIdentityRateLimitGate(rate_store, InMemoryRateLimitStore(), "salt-for-tests", WINDOW, clock)


@pytest.fixture
def make_service(notes, gate, wall_config, moderation_config):
    def _make(classifier=None, images=None, **kwargs) -> SubmissionService:
        return SubmissionService(
            notes,
            gate,
            classifier or stub_classifier(verdict(True, 0.95)),
            images or InlineImageStorage(),
            wall=wall_config,
            moderation=moderation_config,
            rng=random.Random(11),
            **kwargs,
        )
    return _make


def request(image: str, color: str = "yellow", x: float | None = None, y: float | None = None) -> SubmissionRequest:
    return SubmissionRequest(image_data=image, color=color, x=x, y=y)


class TestSubmitHappyPath:
    """Tests for successful submissions."""

    @pytest.mark.asyncio
    async def test_confident_approval_is_approved(self, make_service, notes, png_data_uri):
        service = make_service()
        result = await service.submit(request(png_data_uri, x=1000, y=500), WHO)

        assert result.note.moderation_status == "approved"
        assert result.message == APPROVED_MESSAGE
        assert result.note.owner_identity == "session-abc"
        assert (result.note.x, result.note.y) == (1000, 500)
        assert len(notes) == 1

    @pytest.mark.asyncio
    async def test_confident_rejection_is_rejected(self, make_service, png_data_uri):
        service = make_service(stub_classifier(verdict(False, 0.9, reason="Contains a phone number")))
        result = await service.submit(request(png_data_uri, x=0, y=0), WHO)

        assert result.note.moderation_status == "rejected"
        assert result.message == "Note was not approved: Contains a phone number"

    @pytest.mark.asyncio
    async def test_low_confidence_is_pending(self, make_service, png_data_uri):
        service = make_service(stub_classifier(verdict(True, 0.5)))
        result = await service.submit(request(png_data_uri, x=0, y=0), WHO)

        assert result.note.moderation_status == "pending"
        assert result.message == PENDING_MESSAGE

    @pytest.mark.asyncio
    async def test_classifier_error_still_creates_pending_note(self, make_service, notes, png_data_uri):
        """A classifier outage should never fail the submission."""
        classifier = ModerationClassifier(
            FailingGenerator(),
            max_attempts=1,
            breaker=aiobreaker.CircuitBreaker(fail_max=5, timeout_duration=timedelta(seconds=60)),
        )
        service = make_service(classifier)
        result = await service.submit(request(png_data_uri, x=0, y=0), WHO)

        assert result.note.moderation_status == "pending"
        assert result.verdict.approved is False
        assert result.verdict.confidence == 0.0
        assert len(notes) == 1

    @pytest.mark.asyncio
    async def test_auto_moderation_disabled_skips_classifier(self, make_service, png_data_uri):
        classifier = stub_classifier(verdict(True, 0.99))
        service = make_service(classifier, auto_moderation_enabled=False)
        result = await service.submit(request(png_data_uri, x=0, y=0), WHO)

        assert result.note.moderation_status == "pending"
        classifier.classify.assert_not_called()

    @pytest.mark.asyncio
    async def test_auto_position_near_centre(self, make_service, wall_config, png_data_uri):
        service = make_service()
        result = await service.submit(request(png_data_uri), WHO)

        placement = wall_config.placement
        assert abs(result.note.x - placement.center_x) <= placement.variance
        assert abs(result.note.rotation) <= wall_config.rotation_jitter_degrees

    @pytest.mark.asyncio
    async def test_visible_id_is_uuid(self, make_service, png_data_uri):
        service = make_service()
        result = await service.submit(request(png_data_uri, x=0, y=0), WHO)
        assert len(result.note.visible_id) == 36


class TestSubmitRateLimit:
    """Tests for the rate limit step."""

    @pytest.mark.asyncio
    async def test_second_submission_rejected_then_allowed_after_window(
        self, make_service, clock, png_data_uri,
    ):
        service = make_service()
        await service.submit(request(png_data_uri, x=0, y=0), WHO)

        clock.advance(hours=2)
        with pytest.raises(RateLimitError) as exc_info:
            await service.submit(request(png_data_uri, x=5000, y=0), WHO)
        assert exc_info.value.time_until_next_post == 22 * 3_600_000
        assert exc_info.value.details["time_remaining"] == "22h 0m"

        clock.advance(hours=22)
        result = await service.submit(request(png_data_uri, x=5000, y=0), WHO)
        assert result.note.x == 5000

    @pytest.mark.asyncio
    async def test_rate_limit_checked_before_validation(self, make_service, png_data_uri):
        service = make_service()
        await service.submit(request(png_data_uri, x=0, y=0), WHO)
        with pytest.raises(RateLimitError):
            await service.submit(request("not an image"), WHO)

    @pytest.mark.asyncio
    async def test_disabled_rate_limit_allows_repeat(self, make_service, png_data_uri):
        service = make_service(rate_limit_enabled=False)
        await service.submit(request(png_data_uri, x=0, y=0), WHO)
        await service.submit(request(png_data_uri, x=5000, y=0), WHO)


class TestSubmitValidation:
    """Tests for payload validation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "image,color",
        [("", "yellow"), ("IMAGE", "")],
    )
    async def test_missing_fields(self, make_service, png_data_uri, image, color):
        service = make_service()
        with pytest.raises(ValidationError) as exc_info:
            await service.submit(request(image.replace("IMAGE", png_data_uri), color), WHO)
        assert exc_info.value.message == "Missing required fields"

    @pytest.mark.asyncio
    async def test_non_image_payload(self, make_service):
        service = make_service()
        with pytest.raises(ValidationError):
            await service.submit(request("data:text/plain;base64,aGVsbG8="), WHO)

    @pytest.mark.asyncio
    async def test_oversized_image(self, make_service, wall_config):
        import base64
        big = base64.b64encode(b"\x00" * (wall_config.max_image_bytes + 1)).decode()
        service = make_service()
        with pytest.raises(ValidationError) as exc_info:
            await service.submit(request(f"data:image/png;base64,{big}"), WHO)
        assert exc_info.value.message == "Image too large. Please keep it under 500KB."

    @pytest.mark.asyncio
    async def test_unknown_color(self, make_service, png_data_uri):
        service = make_service()
        with pytest.raises(ValidationError) as exc_info:
            await service.submit(request(png_data_uri, color="chartreuse"), WHO)
        assert "color" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_half_position_rejected(self, make_service, png_data_uri):
        service = make_service()
        with pytest.raises(ValidationError):
            await service.submit(request(png_data_uri, x=100), WHO)

    @pytest.mark.asyncio
    async def test_non_finite_position_rejected(self, make_service, png_data_uri):
        service = make_service()
        with pytest.raises(ValidationError):
            await service.submit(request(png_data_uri, x=float("inf"), y=0), WHO)


class TestSubmitOverlap:
    """Tests for the placement overlap check."""

    @pytest.mark.asyncio
    async def test_full_collision_rejected_without_side_effects(
        self, make_service, notes, rate_store, png_data_uri,
    ):
        """No note is created and no rate limit record consumed."""
        await notes.create(
            visible_id="existing",
            image_ref=png_data_uri,
            color="pink",
            x=1000,
            y=500,
            rotation=0,
            moderation_status="approved",
            owner_identity="someone-else",
        )
        images = InlineImageStorage()
        images.upload = AsyncMock(wraps=images.upload)
        service = make_service(images=images)

        with pytest.raises(OverlapError) as exc_info:
            await service.submit(request(png_data_uri, x=1000, y=500), WHO)

        assert exc_info.value.details["max_overlap"] == 1.0
        assert len(notes) == 1
        assert len(rate_store) == 0
        images.upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_notes_do_not_block(self, make_service, notes, png_data_uri):
        await notes.create(
            visible_id="hidden",
            image_ref=png_data_uri,
            color="pink",
            x=1000,
            y=500,
            rotation=0,
            moderation_status="rejected",
            owner_identity="someone-else",
        )
        service = make_service()
        result = await service.submit(request(png_data_uri, x=1000, y=500), WHO)
        assert result.note.moderation_status == "approved"

    @pytest.mark.asyncio
    async def test_small_overlap_accepted(self, make_service, notes, png_data_uri):
        await notes.create(
            visible_id="neighbour",
            image_ref=png_data_uri,
            color="pink",
            x=1000,
            y=500,
            rotation=0,
            moderation_status="approved",
            owner_identity="someone-else",
        )
        service = make_service()
        # 30px of 150px horizontally = 20% overlap
        result = await service.submit(request(png_data_uri, x=1120, y=500), WHO)
        assert result.note.x == 1120


class TestSubmitUploadFailure:
    """Tests for image persistence failures."""

    @pytest.mark.asyncio
    async def test_upload_failure_aborts(self, make_service, notes, rate_store, png_data_uri):
        images = MagicMock()
        images.upload = AsyncMock(side_effect=UploadError())
        classifier = stub_classifier(verdict(True, 0.99))
        service = make_service(classifier, images=images)

        with pytest.raises(UploadError):
            await service.submit(request(png_data_uri, x=0, y=0), WHO)

        assert len(notes) == 0
        assert len(rate_store) == 0
        classifier.classify.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_failure_releases_uploaded_image(self, make_service, png_data_uri):
        images = MagicMock()
        images.upload = AsyncMock(return_value="https://cdn.example/notes/x.png")
        images.delete = AsyncMock()
        service = make_service(images=images)
        service.notes.create = AsyncMock(side_effect=RuntimeError("write failed"))

        with pytest.raises(RuntimeError):
            await service.submit(request(png_data_uri, x=0, y=0), WHO)

        images.delete.assert_awaited_once_with("https://cdn.example/notes/x.png")


class TestStatusMessage:
    def test_rejected_without_reason_uses_default(self):
        assert status_message("rejected") == "Note was not approved: Content does not meet community guidelines."

    def test_flagged_reads_as_pending(self):
        assert status_message("flagged") == PENDING_MESSAGE
