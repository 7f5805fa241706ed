"""Tests for windowed content duplicate detection."""

from datetime import timedelta

import pytest

from config.settings import DeliverySettings
from domain.delivery import EmailType, SendStatus
from notifications.content_guard import ContentDuplicateGuard


@pytest.fixture
def guard(repository, delivery_settings):
    return ContentDuplicateGuard(repository, delivery_settings)


class TestFindRecentDuplicate:
    """Tests for find_recent_duplicate."""

    @pytest.mark.asyncio
    async def test_sent_inside_window(self, guard, repository, make_record, clock):
        """A matching send two minutes ago is a duplicate."""
        await repository.insert_if_absent(
            make_record("k1", SendStatus.SENT, sent_at=clock() - timedelta(minutes=2))
        )

        found = await guard.find_recent_duplicate("a@b.com", EmailType.SYSTEM, "hash-1", clock(), "k2")

        assert found.idempotency_key == "k1"

    @pytest.mark.asyncio
    async def test_sent_outside_window(self, guard, repository, make_record, clock):
        """A matching send six minutes ago is not."""
        await repository.insert_if_absent(
            make_record("k1", SendStatus.SENT, sent_at=clock() - timedelta(minutes=6))
        )

        assert await guard.find_recent_duplicate("a@b.com", EmailType.SYSTEM, "hash-1", clock(), "k2") is None

    @pytest.mark.asyncio
    async def test_own_key_excluded(self, guard, repository, make_record, clock):
        await repository.insert_if_absent(make_record("k1", SendStatus.SENT, sent_at=clock()))
        assert await guard.find_recent_duplicate("a@b.com", EmailType.SYSTEM, "hash-1", clock(), "k1") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [SendStatus.PENDING, SendStatus.FAILED])
    async def test_unsent_records_ignored(self, guard, repository, make_record, clock, status):
        """Only sent records count as prior deliveries."""
        await repository.insert_if_absent(make_record("k1", status))
        assert await guard.find_recent_duplicate("a@b.com", EmailType.SYSTEM, "hash-1", clock(), "k2") is None

    @pytest.mark.asyncio
    async def test_other_recipient_or_type_ignored(self, guard, repository, make_record, clock):
        await repository.insert_if_absent(make_record("k1", SendStatus.SENT, sent_at=clock()))

        assert await guard.find_recent_duplicate("c@d.com", EmailType.SYSTEM, "hash-1", clock(), "k2") is None
        assert await guard.find_recent_duplicate("a@b.com", EmailType.CAMPAIGN, "hash-1", clock(), "k2") is None

    @pytest.mark.asyncio
    async def test_zero_window_disables(self, repository, make_record, clock):
        guard = ContentDuplicateGuard(repository, DeliverySettings(duplicate_window_minutes=0))
        await repository.insert_if_absent(make_record("k1", SendStatus.SENT, sent_at=clock()))

        assert await guard.find_recent_duplicate("a@b.com", EmailType.SYSTEM, "hash-1", clock(), "k2") is None


class TestCheck:
    """Tests for detection plus audit logging."""

    @pytest.mark.asyncio
    async def test_hit_writes_log(self, guard, repository, make_record, clock):
        sent_at = clock() - timedelta(minutes=1)
        await repository.insert_if_absent(make_record("k1", SendStatus.SENT, sent_at=sent_at))

        original = await guard.check("k2", "a@b.com", EmailType.SYSTEM, "hash-1", clock(), {"case_id": 4})

        assert original.idempotency_key == "k1"
        [entry] = repository.logs
        assert entry.original_key == "k1"
        assert entry.duplicate_key == "k2"
        assert entry.prevented_at == clock()
        assert entry.metadata == {
            "reason": "content_duplicate",
            "window_minutes": 5,
            "original_sent_at": sent_at.isoformat(),
            "case_id": 4,
        }

    @pytest.mark.asyncio
    async def test_miss_writes_nothing(self, guard, repository, clock):
        assert await guard.check("k2", "a@b.com", EmailType.SYSTEM, "hash-1", clock()) is None
        assert repository.logs == []
