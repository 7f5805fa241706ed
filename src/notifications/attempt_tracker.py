"""Append-only record of physical transport calls per idempotency key."""

import logging
from datetime import datetime
from typing import Optional

from config.settings import DeliverySettings
from domain.delivery import SendAttempt, SendStatus
from domain.repositories import IDeliveryRepository
from notifications.errors import RetryExhaustedError

logger = logging.getLogger(__name__)


class AttemptTracker:
    """Numbers, records and completes send attempts under a retry bound."""

    def __init__(self, repository: IDeliveryRepository, settings: DeliverySettings):
        self.repository = repository
        self.settings = settings

    async def next_attempt_number(self, idempotency_key: str) -> int:
        return await self.repository.count_attempts(idempotency_key) + 1

    async def record_attempt(
        self,
        idempotency_key: str,
        attempt_number: int,
        now: datetime,
    ) -> Optional[int]:
        """
        Insert a pending attempt before the transport is called.

        Returns:
            The attempt id, or None when another sender already holds
            this attempt slot.

        Raises:
            RetryExhaustedError: attempt_number is above the maximum.
        """
        if attempt_number > self.settings.max_retry_attempts:
            raise RetryExhaustedError(
                idempotency_key, attempt_number, self.settings.max_retry_attempts
            )

        attempt_id = await self.repository.insert_attempt(SendAttempt(
            idempotency_key=idempotency_key,
            attempt_number=attempt_number,
            status=SendStatus.PENDING,
            attempted_at=now,
        ))
        if attempt_id is None:
            logger.info(f"Attempt {attempt_number} for {idempotency_key} already taken")
        return attempt_id

    async def complete_attempt(
        self,
        attempt_id: int,
        outcome: SendStatus,
        now: datetime,
        error_message: Optional[str] = None,
    ) -> bool:
        if outcome == SendStatus.PENDING:
            raise ValueError("An attempt can only complete as sent or failed")
        completed = await self.repository.complete_attempt(attempt_id, outcome, error_message, now)
        if not completed:
            logger.warning(f"Attempt {attempt_id} was already completed")
        return completed
