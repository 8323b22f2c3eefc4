"""
Submission Service.

The single workflow a new note goes through:

    1. rate-limit check       - RateLimitError, nothing else runs
    2. payload validation     - ValidationError, nothing else runs
    3. identity               - owner is the submitter's session token
    4. position               - explicit or picked, always overlap-checked
    5. image persistence      - UploadError aborts; no note without an image
    6. classification         - confident verdicts decide, otherwise pending
    7. store write
    8. rate-limit recording   - only after the note exists

A classifier outage never fails a submission; the note is stored as pending.
"""

import math
import random
from dataclasses import dataclass

from stickywall.backend.core.config_schema import ModerationSchema, WallSchema
from stickywall.backend.core.exceptions import OverlapError, RateLimitError, ValidationError
from stickywall.backend.core.utils import generate_visible_id
from stickywall.backend.models.note import ModerationStatus, Note
from stickywall.backend.repositories.note import NoteStore, RegionBounds
from stickywall.backend.services.base import BaseService
from stickywall.backend.services.classifier import ModerationClassifier, ModerationVerdict
from stickywall.backend.services.geometry import (
    PlacementPolicy,
    Position,
    find_available_position,
    max_overlap,
    neighbourhood,
    placement_band,
)
from stickywall.backend.services.identity import ClientIdentity
from stickywall.backend.services.image_storage import (
    DecodedImage,
    ImageStorage,
    decode_data_uri,
    release_image,
)
from stickywall.backend.services.rate_limit import RateLimitGate

APPROVED_MESSAGE = "Note posted and approved! It's now visible on the wall."
PENDING_MESSAGE = "Note posted! It will be visible to others after moderation."
DEFAULT_REJECTION_REASON = "Content does not meet community guidelines."


@dataclass(frozen=True)
class SubmissionRequest:
    image_data: str
    color: str
    x: float | None = None
    y: float | None = None


@dataclass(frozen=True)
class SubmissionResult:
    note: Note
    message: str
    verdict: ModerationVerdict | None = None


def status_message(status: str, reason: str | None = None) -> str:
    if status == ModerationStatus.APPROVED.value:
        return APPROVED_MESSAGE
    if status == ModerationStatus.REJECTED.value:
        return f"Note was not approved: {reason or DEFAULT_REJECTION_REASON}"
    return PENDING_MESSAGE


class SubmissionService(BaseService):
    """Orchestrates note creation across the gate, stores and collaborators."""

    def __init__(
        self,
        notes: NoteStore,
        gate: RateLimitGate,
        classifier: ModerationClassifier,
        images: ImageStorage,
        *,
        wall: WallSchema,
        moderation: ModerationSchema,
        auto_moderation_enabled: bool = True,
        rate_limit_enabled: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__()
        self.notes = notes
        self.gate = gate
        self.classifier = classifier
        self.images = images
        self.wall = wall
        self.moderation = moderation
        self.policy = PlacementPolicy.from_config(wall)
        self.auto_moderation_enabled = auto_moderation_enabled
        self.rate_limit_enabled = rate_limit_enabled
        self.rng = rng or random.Random()

    async def submit(self, request: SubmissionRequest, identity: ClientIdentity) -> SubmissionResult:
        await self._check_rate_limit(identity)

        image = self._validate(request)
        owner_identity = identity.session_id

        position = await self._resolve_position(request)

        visible_id = generate_visible_id()
        image_ref = await self.images.upload(request.image_data, image, visible_id)

        status, verdict = await self._classify(request.image_data)

        try:
            note = await self._store_call(
                "create_note",
                self.notes.create(
                    visible_id=visible_id,
                    image_ref=image_ref,
                    color=request.color,
                    x=position.x,
                    y=position.y,
                    rotation=self._rotation(),
                    moderation_status=status,
                    owner_identity=owner_identity,
                ),
            )
        except Exception:
            await release_image(self.images, image_ref)
            raise

        await self.gate.record_submission(identity, note.visible_id)

        self._log_operation(
            "Note submitted",
            visible_id=note.visible_id,
            status=status,
            x=note.x,
            y=note.y,
            explicit_position=request.x is not None,
        )
        reason = verdict.reason if verdict is not None else None
        return SubmissionResult(note=note, message=status_message(status, reason), verdict=verdict)

    async def _check_rate_limit(self, identity: ClientIdentity) -> None:
        if not self.rate_limit_enabled:
            return
        decision = await self.gate.can_post(identity)
        if not decision.can_post:
            raise RateLimitError(
                decision.reason or "Only one note per person per day!",
                time_until_next_post=decision.time_until_next_post,
                time_remaining=decision.time_remaining,
            )

    def _validate(self, request: SubmissionRequest) -> DecodedImage:
        if not request.image_data or not request.color:
            missing = [
                name for name, value in (("image_data", request.image_data), ("color", request.color))
                if not value
            ]
            raise ValidationError("Missing required fields", details={"missing_fields": missing})

        if not request.image_data.startswith("data:image/"):
            raise ValidationError("Invalid image data", details={"image_data": "Expected a data:image/ URI"})

        image = decode_data_uri(request.image_data)
        if image.size > self.wall.max_image_bytes:
            raise ValidationError(
                f"Image too large. Please keep it under {self.wall.max_image_bytes // 1000}KB.",
                details={"image_data": f"Maximum size is {self.wall.max_image_bytes} bytes"},
            )

        if request.color not in self.wall.colors:
            raise ValidationError(
                "Invalid color",
                details={"color": f"Must be one of: {', '.join(self.wall.colors)}"},
            )

        if (request.x is None) != (request.y is None):
            raise ValidationError(
                "Position requires both x and y",
                details={"position": "Provide both x and y, or neither"},
            )
        if request.x is not None and not (math.isfinite(request.x) and math.isfinite(request.y)):
            raise ValidationError("Invalid position", details={"position": "Coordinates must be finite numbers"})

        return image

    async def _neighbours(self, bounds: tuple[float, float, float, float]) -> list[Position]:
        min_x, max_x, min_y, max_y = bounds
        notes = await self._store_call(
            "list_in_region",
            self.notes.list_in_region(RegionBounds(min_x=min_x, max_x=max_x, min_y=min_y, max_y=max_y)),
        )
        return [Position(x=n.x, y=n.y) for n in notes]

    async def _resolve_position(self, request: SubmissionRequest) -> Position:
        if request.x is not None and request.y is not None:
            candidate = Position(x=request.x, y=request.y)
        else:
            existing = await self._neighbours(placement_band(self.policy))
            candidate = find_available_position(existing, self.policy, self.rng)

        neighbours = await self._neighbours(neighbourhood(candidate, self.policy))
        worst = max_overlap(candidate, neighbours, self.policy.note_width, self.policy.note_height)
        if worst > self.policy.max_overlap:
            self._log_debug("Placement rejected", x=candidate.x, y=candidate.y, overlap=worst)
            raise OverlapError(details={"max_overlap": round(worst, 4), "allowed": self.policy.max_overlap})
        return candidate

    async def _classify(self, image_data: str) -> tuple[str, ModerationVerdict | None]:
        if not self.auto_moderation_enabled:
            return ModerationStatus.PENDING.value, None

        verdict = await self.classifier.classify(image_data)
        if verdict.available and verdict.confidence >= self.moderation.confidence_threshold:
            status = ModerationStatus.APPROVED if verdict.approved else ModerationStatus.REJECTED
            return status.value, verdict
        return ModerationStatus.PENDING.value, verdict

    def _rotation(self) -> float:
        jitter = self.wall.rotation_jitter_degrees
        return self.rng.uniform(-jitter, jitter)
