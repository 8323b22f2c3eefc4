"""
Integration Tests for Notes API.

Tests the public wall endpoints against the test database, with the
classifier stubbed.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stickywall.backend.models.note import Note
from stickywall.backend.models.rate_limit import RateLimitRecord
from stickywall.backend.repositories.note import NoteRepository
from stickywall.backend.services.classifier import ModerationVerdict
from stickywall.backend.services.submission import APPROVED_MESSAGE, PENDING_MESSAGE

NOTES_URL = "/api/v1/notes"


async def seed_note(
    db_session: AsyncSession,
    visible_id: str,
    x: float,
    y: float,
    status: str = "approved",
    image_ref: str = "data:image/png;base64,AAAA",
) -> Note:
    return await NoteRepository(db_session).create(
        visible_id=visible_id,
        image_ref=image_ref,
        color="blue",
        x=x,
        y=y,
        rotation=1.5,
        moderation_status=status,
        owner_identity="seed-owner",
    )


async def count(db_session: AsyncSession, model) -> int:
    return await db_session.scalar(select(func.count()).select_from(model))


class TestSubmitNote:
    """Tests for POST /api/v1/notes."""

    @pytest.mark.asyncio
    async def test_submit_approved(self, client: AsyncClient, api, png_data_uri):
        """Should store the note, approve it and set the client cookies."""
        response = await client.post(
            NOTES_URL,
            json={"image_data": png_data_uri, "color": "yellow", "x": 1000, "y": 500},
        )

        data = api.assert_success(response, expected_status=201)
        note = data["data"]["note"]
        assert note["moderation_status"] == "approved"
        assert (note["x"], note["y"]) == (1000, 500)
        assert data["data"]["message"] == APPROVED_MESSAGE
        assert "stickywall_session" in response.cookies
        assert "stickywall_last_note" in response.cookies

    @pytest.mark.asyncio
    async def test_submit_without_position_is_placed(self, client: AsyncClient, api, png_data_uri):
        response = await client.post(NOTES_URL, json={"image_data": png_data_uri, "color": "pink"})

        note = api.assert_success(response, expected_status=201)["data"]["note"]
        assert isinstance(note["x"], float)

    @pytest.mark.asyncio
    async def test_low_confidence_is_pending(self, client: AsyncClient, api, classifier, png_data_uri):
        classifier.classify.return_value = ModerationVerdict(approved=True, reason="unsure", confidence=0.4)

        response = await client.post(NOTES_URL, json={"image_data": png_data_uri, "color": "green", "x": 0, "y": 0})

        data = api.assert_success(response, expected_status=201)
        assert data["data"]["note"]["moderation_status"] == "pending"
        assert data["data"]["message"] == PENDING_MESSAGE

    @pytest.mark.asyncio
    async def test_rejected_note_is_stored_but_hidden(self, client: AsyncClient, api, classifier, png_data_uri):
        classifier.classify.return_value = ModerationVerdict(
            approved=False, reason="Contains an email address", confidence=0.92,
        )

        response = await client.post(NOTES_URL, json={"image_data": png_data_uri, "color": "green", "x": 0, "y": 0})

        data = api.assert_success(response, expected_status=201)
        assert data["data"]["message"] == "Note was not approved: Contains an email address"
        listing = api.assert_success(await client.get(NOTES_URL))
        assert listing["data"] == []

    @pytest.mark.asyncio
    async def test_second_submission_is_rate_limited(self, client: AsyncClient, api, png_data_uri):
        first = await client.post(NOTES_URL, json={"image_data": png_data_uri, "color": "yellow", "x": 0, "y": 0})
        api.assert_success(first, expected_status=201)

        second = await client.post(NOTES_URL, json={"image_data": png_data_uri, "color": "yellow", "x": 5000, "y": 0})

        data = api.assert_error(second, 429, "RATE_LIMITED")
        assert data["error"]["details"]["time_remaining"] in ("24h 0m", "23h 59m")
        assert int(second.headers["Retry-After"]) > 0

    @pytest.mark.asyncio
    async def test_other_visitor_is_not_limited(
        self, client: AsyncClient, other_client: AsyncClient, api, png_data_uri,
    ):
        await client.post(NOTES_URL, json={"image_data": png_data_uri, "color": "yellow", "x": 0, "y": 0})

        response = await other_client.post(
            NOTES_URL, json={"image_data": png_data_uri, "color": "yellow", "x": 5000, "y": 0},
        )

        api.assert_success(response, expected_status=201)

    @pytest.mark.asyncio
    async def test_missing_fields_rejected(self, client: AsyncClient, api):
        response = await client.post(NOTES_URL, json={"color": "yellow"})
        api.assert_validation_error(response, field="image_data")

    @pytest.mark.asyncio
    async def test_unknown_color_rejected(self, client: AsyncClient, api, png_data_uri):
        response = await client.post(NOTES_URL, json={"image_data": png_data_uri, "color": "chartreuse"})
        api.assert_error(response, 400, "VAL_VALIDATION_ERROR")

    @pytest.mark.asyncio
    async def test_non_image_payload_rejected(self, client: AsyncClient, api):
        response = await client.post(NOTES_URL, json={"image_data": "data:text/plain;base64,aGk=", "color": "yellow"})
        api.assert_error(response, 400, "VAL_VALIDATION_ERROR")


class TestSubmitOverlap:
    """Placement collisions across the whole stack."""

    @pytest.mark.asyncio
    async def test_collision_returns_409_without_side_effects(
        self, client: AsyncClient, api, db_session: AsyncSession, png_data_uri,
    ):
        """No note is stored and the caller may still post elsewhere."""
        await seed_note(db_session, "existing", x=1000, y=500)

        response = await client.post(
            NOTES_URL, json={"image_data": png_data_uri, "color": "yellow", "x": 1000, "y": 500},
        )

        data = api.assert_error(response, 409, "PLACEMENT_OVERLAP")
        assert data["error"]["details"]["max_overlap"] == 1.0
        assert await count(db_session, Note) == 1
        assert await count(db_session, RateLimitRecord) == 0

        session = api.assert_success(await client.get("/api/v1/session"))
        assert session["data"]["can_post"] is True

        retry = await client.post(
            NOTES_URL, json={"image_data": png_data_uri, "color": "yellow", "x": 3000, "y": 500},
        )
        api.assert_success(retry, expected_status=201)

    @pytest.mark.asyncio
    async def test_rejected_note_does_not_block_spot(
        self, client: AsyncClient, api, db_session: AsyncSession, png_data_uri,
    ):
        await seed_note(db_session, "hidden", x=1000, y=500, status="rejected")

        response = await client.post(
            NOTES_URL, json={"image_data": png_data_uri, "color": "yellow", "x": 1000, "y": 500},
        )

        api.assert_success(response, expected_status=201)


class TestListNotes:
    """Tests for GET /api/v1/notes."""

    @pytest.mark.asyncio
    async def test_lists_public_statuses_only(self, client: AsyncClient, api, db_session: AsyncSession):
        await seed_note(db_session, "a", 0, 0, status="approved")
        await seed_note(db_session, "p", 300, 0, status="pending")
        await seed_note(db_session, "r", 600, 0, status="rejected")
        await seed_note(db_session, "f", 900, 0, status="flagged")

        data = api.assert_success(await client.get(NOTES_URL))

        assert {n["visible_id"] for n in data["data"]} == {"a", "p"}

    @pytest.mark.asyncio
    async def test_region_includes_padding(self, client: AsyncClient, api, db_session: AsyncSession):
        """Notes just outside the viewport are included so edges render whole."""
        await seed_note(db_session, "inside", 100, 100)
        await seed_note(db_session, "edge", 1150, 100)
        await seed_note(db_session, "far", 5000, 100)

        response = await client.get(NOTES_URL, params={"min_x": 0, "max_x": 1000, "min_y": 0, "max_y": 800})

        data = api.assert_success(response)
        assert {n["visible_id"] for n in data["data"]} == {"inside", "edge"}

    @pytest.mark.asyncio
    async def test_partial_bounds_rejected(self, client: AsyncClient, api):
        response = await client.get(NOTES_URL, params={"min_x": 0, "max_x": 1000})
        api.assert_error(response, 400, "VAL_VALIDATION_ERROR")


class TestGetNote:
    """Tests for GET /api/v1/notes/{visible_id}."""

    @pytest.mark.asyncio
    async def test_get_visible_note(self, client: AsyncClient, api, db_session: AsyncSession):
        await seed_note(db_session, "n1", 10, 20)

        data = api.assert_success(await client.get(f"{NOTES_URL}/n1"))

        assert data["data"]["visible_id"] == "n1"
        assert "owner_identity" not in data["data"]

    @pytest.mark.asyncio
    async def test_hidden_note_is_not_found(self, client: AsyncClient, api, db_session: AsyncSession):
        await seed_note(db_session, "gone", 10, 20, status="rejected")
        api.assert_error(await client.get(f"{NOTES_URL}/gone"), 404, "RES_NOT_FOUND")

    @pytest.mark.asyncio
    async def test_unknown_note(self, client: AsyncClient, api):
        api.assert_error(await client.get(f"{NOTES_URL}/missing"), 404, "RES_NOT_FOUND")


class TestFlagNote:
    """Tests for POST /api/v1/notes/{visible_id}/flag."""

    @pytest.mark.asyncio
    async def test_third_flag_hides_note(self, client: AsyncClient, api, db_session: AsyncSession):
        await seed_note(db_session, "n1", 0, 0)

        for expected in (1, 2, 3):
            data = api.assert_success(await client.post(f"{NOTES_URL}/n1/flag"))
            assert data["data"]["flag_count"] == expected

        assert data["data"]["message"].startswith("Thank you for reporting")
        api.assert_error(await client.get(f"{NOTES_URL}/n1"), 404)

    @pytest.mark.asyncio
    async def test_flag_unknown_note(self, client: AsyncClient, api):
        api.assert_error(await client.post(f"{NOTES_URL}/missing/flag"), 404, "RES_NOT_FOUND")
