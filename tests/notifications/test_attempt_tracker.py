"""Tests for attempt numbering and the retry bound."""

import pytest

from domain.delivery import SendStatus
from notifications.attempt_tracker import AttemptTracker
from notifications.errors import RetryExhaustedError


@pytest.fixture
def tracker(repository, delivery_settings):
    return AttemptTracker(repository, delivery_settings)


class TestAttemptTracker:
    """Tests for AttemptTracker."""

    @pytest.mark.asyncio
    async def test_numbers_increase(self, tracker, clock):
        assert await tracker.next_attempt_number("k1") == 1
        await tracker.record_attempt("k1", 1, clock())
        assert await tracker.next_attempt_number("k1") == 2

    @pytest.mark.asyncio
    async def test_recorded_as_pending(self, tracker, repository, clock):
        """The attempt exists before the transport is called."""
        attempt_id = await tracker.record_attempt("k1", 1, clock())

        attempt = await repository.get_latest_attempt("k1")
        assert attempt.id == attempt_id
        assert attempt.status == SendStatus.PENDING
        assert attempt.completed_at is None

    @pytest.mark.asyncio
    async def test_taken_slot_returns_none(self, tracker, clock):
        """Two writers for the same attempt number: only one gets an id."""
        assert await tracker.record_attempt("k1", 1, clock()) is not None
        assert await tracker.record_attempt("k1", 1, clock()) is None

    @pytest.mark.asyncio
    async def test_above_maximum_raises(self, tracker, repository, clock):
        with pytest.raises(RetryExhaustedError) as exc_info:
            await tracker.record_attempt("k1", 4, clock())

        assert exc_info.value.max_attempts == 3
        assert repository.attempts == []

    @pytest.mark.asyncio
    async def test_complete_attempt(self, tracker, repository, clock):
        attempt_id = await tracker.record_attempt("k1", 1, clock())
        clock.advance(seconds=2)

        assert await tracker.complete_attempt(attempt_id, SendStatus.FAILED, clock(), "451 try later") is True

        attempt = await repository.get_latest_attempt("k1")
        assert attempt.status == SendStatus.FAILED
        assert attempt.error_message == "451 try later"
        assert attempt.completed_at == clock()

    @pytest.mark.asyncio
    async def test_completed_attempt_immutable(self, tracker, repository, clock):
        """A completed attempt is never rewritten."""
        attempt_id = await tracker.record_attempt("k1", 1, clock())
        await tracker.complete_attempt(attempt_id, SendStatus.SENT, clock())

        assert await tracker.complete_attempt(attempt_id, SendStatus.FAILED, clock(), "late") is False
        assert (await repository.get_latest_attempt("k1")).status == SendStatus.SENT

    @pytest.mark.asyncio
    async def test_complete_as_pending_rejected(self, tracker, clock):
        attempt_id = await tracker.record_attempt("k1", 1, clock())
        with pytest.raises(ValueError):
            await tracker.complete_attempt(attempt_id, SendStatus.PENDING, clock())
