"""Tests for the retention sweep."""

from datetime import timedelta

import pytest

from config.settings import DeliverySettings
from domain.delivery import DeduplicationLogEntry, EmailType, SendStatus
from notifications.retention import RetentionSweeper


@pytest.fixture
def sweeper(repository, delivery_settings):
    return RetentionSweeper(repository, delivery_settings)


def _log(prevented_at, key="k2"):
    return DeduplicationLogEntry(
        recipient="a@b.com",
        email_type=EmailType.SYSTEM,
        content_hash="hash-1",
        original_key="k1",
        duplicate_key=key,
        prevented_at=prevented_at,
    )


class TestRetentionSweeper:
    """Tests for RetentionSweeper.sweep."""

    @pytest.mark.asyncio
    async def test_expired_records_and_attempts_removed(
        self, sweeper, repository, make_record, add_attempts, clock
    ):
        """Expired records go with their attempts; live ones stay."""
        await repository.insert_if_absent(
            make_record("old", SendStatus.SENT, expires_at=clock() - timedelta(minutes=1))
        )
        await repository.insert_if_absent(make_record("live", SendStatus.FAILED))
        await add_attempts("old", 2)
        await add_attempts("live", 1)

        result = await sweeper.sweep(clock())

        assert result.deleted_keys == 1
        assert result.deleted_attempts == 2
        assert [r.idempotency_key for r in repository.records] == ["live"]
        assert [a.idempotency_key for a in repository.attempts] == ["live"]

    @pytest.mark.asyncio
    async def test_expiry_boundary_is_strict(self, sweeper, repository, make_record, clock):
        """A record expiring exactly now is kept."""
        await repository.insert_if_absent(make_record("edge", expires_at=clock()))

        result = await sweeper.sweep(clock())

        assert result.deleted_keys == 0
        assert await repository.get_record("edge") is not None

    @pytest.mark.asyncio
    async def test_batches_until_done(self, repository, make_record, clock):
        """All expired keys are removed even when they span several batches."""
        sweeper = RetentionSweeper(repository, DeliverySettings(cleanup_batch_size=2))
        for i in range(5):
            await repository.insert_if_absent(
                make_record(f"k{i}", expires_at=clock() - timedelta(hours=i + 1))
            )

        result = await sweeper.sweep(clock())

        assert result.deleted_keys == 5
        assert repository.records == []

    @pytest.mark.asyncio
    async def test_logs_past_retention_removed(self, sweeper, repository, clock):
        """Logs are kept for 30 days regardless of the record TTL."""
        await repository.add_dedup_log(_log(clock() - timedelta(days=31), "old"))
        await repository.add_dedup_log(_log(clock() - timedelta(days=29), "recent"))

        result = await sweeper.sweep(clock())

        assert result.deleted_logs == 1
        assert [entry.duplicate_key for entry in repository.logs] == ["recent"]

    @pytest.mark.asyncio
    async def test_empty_store(self, sweeper, clock):
        result = await sweeper.sweep(clock())
        assert result.to_dict() == {"deleted_keys": 0, "deleted_attempts": 0, "deleted_logs": 0}
