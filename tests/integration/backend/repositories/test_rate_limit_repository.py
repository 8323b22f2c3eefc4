"""
Integration Tests for the Rate Limit Store.

The same contract runs against the SQLAlchemy repository and the
in-memory fallback store.
"""

from datetime import datetime, timedelta

import pytest

from stickywall.backend.repositories.memory import InMemoryRateLimitStore
from stickywall.backend.repositories.rate_limit import RateLimitRepository

NOW = datetime(2024, 6, 1, 12, 0, 0)
ALICE = "a" * 64
BOB = "b" * 64


@pytest.fixture(params=["sql", "memory"])
def store(request, db_session):
    if request.param == "sql":
        return RateLimitRepository(db_session)
    return InMemoryRateLimitStore()


class TestMostRecentSince:
    @pytest.mark.asyncio
    async def test_returns_newest_record_in_window(self, store):
        await store.add(ALICE, NOW - timedelta(hours=10), "n1")
        await store.add(ALICE, NOW - timedelta(hours=2), "n2")
        await store.add(BOB, NOW - timedelta(hours=1), "n3")

        assert await store.most_recent_since(ALICE, NOW - timedelta(hours=24)) == NOW - timedelta(hours=2)

    @pytest.mark.asyncio
    async def test_ignores_records_before_window(self, store):
        await store.add(ALICE, NOW - timedelta(hours=30), None)
        assert await store.most_recent_since(ALICE, NOW - timedelta(hours=24)) is None

    @pytest.mark.asyncio
    async def test_unknown_identity(self, store):
        assert await store.most_recent_since(BOB, NOW - timedelta(hours=24)) is None


class TestDeleteOlderThan:
    @pytest.mark.asyncio
    async def test_deletes_only_older_records(self, store):
        await store.add(ALICE, NOW - timedelta(hours=72), None)
        await store.add(BOB, NOW - timedelta(hours=49), None)
        await store.add(ALICE, NOW - timedelta(hours=1), None)

        deleted = await store.delete_older_than(NOW - timedelta(hours=48))

        assert deleted == 2
        assert await store.most_recent_since(ALICE, NOW - timedelta(days=30)) == NOW - timedelta(hours=1)
        assert await store.most_recent_since(BOB, NOW - timedelta(days=30)) is None
