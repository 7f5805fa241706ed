"""
Retention Sweeper

Removes expired idempotency records (with their attempts) and
deduplication log entries past their retention period.

Deletes are scoped by primary key in bounded batches so the sweep can run
alongside live traffic. A pending record is always created with a TTL far
longer than any send, so it cannot expire mid-send.
"""

import logging
from datetime import datetime, timedelta

from config.settings import DeliverySettings
from domain.delivery import CleanupResult
from domain.repositories import IDeliveryRepository

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Deletes bookkeeping rows that have outlived their retention."""

    def __init__(self, repository: IDeliveryRepository, settings: DeliverySettings):
        self.repository = repository
        self.settings = settings

    async def sweep(self, now: datetime) -> CleanupResult:
        """
        Run one sweep.

        Args:
            now: Reference time; records with ``expires_at < now`` are removed.

        Returns:
            CleanupResult with per-table delete counts
        """
        result = CleanupResult()
        batch_size = self.settings.cleanup_batch_size

        while True:
            keys = await self.repository.list_expired_keys(now, batch_size)
            if not keys:
                break

            result.deleted_attempts += await self.repository.delete_attempts_for(keys)
            deleted = await self.repository.delete_records(keys, now)
            result.deleted_keys += deleted

            if len(keys) < batch_size or deleted == 0:
                break

        log_cutoff = now - timedelta(days=self.settings.log_retention_days)
        result.deleted_logs = await self.repository.delete_logs_before(log_cutoff)

        logger.info(
            f"Email retention sweep: {result.deleted_keys} keys, "
            f"{result.deleted_attempts} attempts, {result.deleted_logs} logs removed",
            extra=result.to_dict(),
        )
        return result
