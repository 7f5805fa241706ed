"""
Email Delivery Service - the single entry point for outbound email.

Orchestrates the reliability components around one transport call:

    IdempotencyGuard -> ContentDuplicateGuard -> AttemptTracker
        -> EmailProvider.send -> AttemptTracker / IdempotencyGuard

``send()`` never raises. Duplicates, retry exhaustion, transport failures
and store outages all come back as an EmailResult so a batch of sends can
continue past individual failures. Retries are caller-driven: calling
``send()`` again with the same key is the retry.
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional

from config.settings import DeliverySettings, get_delivery_settings
from domain.delivery import (
    CleanupResult,
    DeduplicationLogEntry,
    DeliveryStats,
    EmailRequest,
    EmailResult,
    SendStatus,
)
from domain.repositories import IDeliveryRepository
from notifications.attempt_tracker import AttemptTracker
from notifications.content_guard import ContentDuplicateGuard
from notifications.email_provider import EmailMessage, EmailProvider, get_email_provider
from notifications.errors import DeliveryError, RetryExhaustedError, TransportError
from notifications.idempotency_guard import GuardDecision, IdempotencyGuard
from notifications.key_generator import KeyGenerator
from notifications.retention import RetentionSweeper

from .logging_config import get_logger, idempotency_key_var, log_performance

logger = get_logger(__name__)

MSG_SENT = "Email sent successfully"
MSG_ALREADY_SENT = "Email already sent successfully"
MSG_CONTENT_DUPLICATE = "Duplicate content email prevented"
MSG_EXHAUSTED = "Maximum retry attempts exceeded"
MSG_IN_PROGRESS = "Email send already in progress"


class EmailDeliveryService:
    """
    Exactly-once-intent email delivery on top of a repository and a provider.

    All state lives in the repository, so any number of service instances
    may share one store.
    """

    def __init__(
        self,
        repository: IDeliveryRepository,
        provider: Optional[EmailProvider] = None,
        settings: Optional[DeliverySettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize EmailDeliveryService.

        Args:
            repository: Delivery store
            provider: Email transport (defaults to the configured provider)
            settings: Delivery policy (defaults to environment settings)
            clock: Returns the current naive UTC time
        """
        self.repository = repository
        self.settings = settings or get_delivery_settings()
        self.provider = provider or get_email_provider()
        self.clock = clock or datetime.utcnow

        self.keys = KeyGenerator(self.settings)
        self.idempotency = IdempotencyGuard(repository, self.settings)
        self.content = ContentDuplicateGuard(repository, self.settings)
        self.attempts = AttemptTracker(repository, self.settings)
        self.sweeper = RetentionSweeper(repository, self.settings)

    async def send(self, request: EmailRequest) -> EmailResult:
        """
        Deliver ``request`` at most once per idempotency key.

        Args:
            request: Fully rendered email

        Returns:
            EmailResult describing what happened; never raises
        """
        now = self.clock()
        key = self.keys.resolve_key(request, now)
        token = idempotency_key_var.set(key)
        progress = {"attempt_number": 0}
        try:
            return await self._send(request, key, now, progress)
        except DeliveryError as e:
            logger.error(f"Email delivery store failure: {e}")
            return self._result(False, key, False, f"Email delivery failed: {e}", progress["attempt_number"])
        except Exception as e:
            logger.exception(f"Unexpected email delivery error: {e}")
            return self._result(False, key, False, f"Email delivery failed: {e}", progress["attempt_number"])
        finally:
            idempotency_key_var.reset(token)

    async def send_batch(self, requests: List[EmailRequest]) -> List[EmailResult]:
        """Send each request in order; one failure never stops the rest."""
        return [await self.send(request) for request in requests]

    async def _send(self, request: EmailRequest, key: str, now: datetime, progress: dict) -> EmailResult:
        recipient = request.recipient
        content_hash = self.keys.derive_content_hash(request.subject, request.body)
        logger.debug(f"Email send requested for {recipient}")

        outcome = await self.idempotency.admit(
            key, request.email_type, recipient, content_hash, request.metadata, now
        )

        if outcome.decision == GuardDecision.ALREADY_SENT:
            logger.info(f"Duplicate email prevented - already sent with key: {key}")
            return self._result(True, key, True, MSG_ALREADY_SENT, 0)

        if outcome.decision == GuardDecision.EXHAUSTED:
            logger.warning(f"Max retry attempts exceeded for key: {key}")
            return self._result(False, key, False, MSG_EXHAUSTED, outcome.attempts_made)

        if outcome.decision == GuardDecision.IN_PROGRESS:
            logger.info(f"Email send already in progress for key: {key}")
            return self._result(False, key, True, MSG_IN_PROGRESS, 0)

        original = await self.content.check(
            key, recipient, request.email_type, content_hash, now, request.metadata
        )
        if original is not None:
            await self.idempotency.release(outcome)
            return self._result(True, key, True, MSG_CONTENT_DUPLICATE, 0)

        attempt_number = await self.attempts.next_attempt_number(key)
        try:
            attempt_id = await self.attempts.record_attempt(key, attempt_number, now)
        except RetryExhaustedError:
            await self.idempotency.mark_failed(key)
            logger.warning(f"Max retry attempts exceeded for key: {key}")
            return self._result(False, key, False, MSG_EXHAUSTED, attempt_number - 1)

        if attempt_id is None:
            return self._result(False, key, True, MSG_IN_PROGRESS, 0)
        progress["attempt_number"] = attempt_number

        try:
            await self._deliver(request)
        except TransportError as e:
            await self.attempts.complete_attempt(attempt_id, SendStatus.FAILED, self.clock(), str(e))
            await self.idempotency.mark_failed(key)
            logger.warning(
                f"Email send failed for key {key}: {e}",
                extra={'extra_data': {'attempt_number': attempt_number, 'error_code': e.error_code}},
            )
            return self._result(False, key, False, str(e), attempt_number)

        completed_at = self.clock()
        await self.attempts.complete_attempt(attempt_id, SendStatus.SENT, completed_at)
        await self.idempotency.mark_sent(key, completed_at)
        logger.info(
            f"Email sent successfully with key: {key}",
            extra={'extra_data': {'attempt_number': attempt_number}},
        )
        return self._result(True, key, False, MSG_SENT, attempt_number)

    async def _deliver(self, request: EmailRequest) -> None:
        """Call the provider once; any non-success becomes TransportError."""
        message = EmailMessage(
            to=request.to,
            subject=request.subject,
            body_html=request.html,
            body_text=request.text,
            from_email=request.from_email,
            metadata=dict(request.metadata),
        )
        # Runs to completion; the transport bounds its own I/O
        try:
            result = await self.provider.send(message)
        except Exception as e:
            raise TransportError(str(e) or e.__class__.__name__, "SEND_ERROR") from e

        if result is None or not result.success:
            error = getattr(result, "error_message", None) or "Email transport reported failure"
            raise TransportError(error, getattr(result, "error_code", None))

    @staticmethod
    def _result(success: bool, key: str, is_duplicate: bool, message: str, attempt_number: int) -> EmailResult:
        return EmailResult(
            success=success,
            idempotency_key=key,
            is_duplicate=is_duplicate,
            message=message,
            attempt_number=attempt_number,
        )

    # -------------------------------------------------------------------------
    # Operational surface
    # -------------------------------------------------------------------------

    async def get_stats(self, hours: Optional[int] = None) -> DeliveryStats:
        """Counters over the trailing ``hours`` (default from settings)."""
        if hours is None:
            hours = self.settings.stats_window_hours
        return await self.repository.get_stats(self.clock() - timedelta(hours=hours))

    async def list_deduplication_logs(
        self,
        hours: Optional[int] = None,
        limit: int = 50,
    ) -> List[DeduplicationLogEntry]:
        """Suppressed duplicates over the trailing ``hours``, newest first."""
        if hours is None:
            hours = self.settings.stats_window_hours
        return await self.repository.list_dedup_logs(self.clock() - timedelta(hours=hours), limit)

    @log_performance("email_cleanup")
    async def run_cleanup_now(self) -> CleanupResult:
        """Run one retention sweep immediately. Raises on store failure."""
        return await self.sweeper.sweep(self.clock())
