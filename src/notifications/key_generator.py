"""
Idempotency key and content hash derivation.

Both are pure functions of their inputs (plus the hour bucket for keys):
no I/O and no state, so the same request always maps to the same key
within one UTC hour.
"""

import hashlib
from datetime import datetime
from typing import Optional

from config.settings import DeliverySettings
from domain.delivery import EmailRequest, normalize_recipient

HOUR_BUCKET_FORMAT = "%Y-%m-%dT%H"


class KeyGenerator:
    """Derives idempotency keys and content hashes from an EmailRequest."""

    def __init__(self, settings: DeliverySettings):
        self.settings = settings

    def _digest(self, data: str) -> str:
        return hashlib.sha256(data.encode("utf-8")).hexdigest()[: self.settings.key_length]

    def derive_idempotency_key(self, request: EmailRequest, now: datetime) -> str:
        """
        Deterministic key for "this email, to this recipient, in this hour".

        Components: email type, normalized recipient, trimmed subject, the
        configured metadata fields (missing ones contribute an empty string)
        and the UTC hour bucket of ``now``.
        """
        metadata = request.metadata or {}
        parts = [
            request.email_type.value,
            normalize_recipient(request.to),
            request.subject.strip(),
        ]
        for name in self.settings.key_metadata_fields:
            value = metadata.get(name)
            parts.append("" if value is None else str(value))
        parts.append(now.strftime(HOUR_BUCKET_FORMAT))
        return self._digest("|".join(parts))

    def derive_content_hash(self, subject: str, body: Optional[str]) -> str:
        """Digest of ``subject|body`` after trimming both."""
        return self._digest(f"{subject.strip()}|{(body or '').strip()}")

    def resolve_key(self, request: EmailRequest, now: datetime) -> str:
        """Caller-supplied key if present, otherwise a derived one."""
        if request.idempotency_key:
            return request.idempotency_key
        return self.derive_idempotency_key(request, now)
