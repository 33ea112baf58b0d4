"""Connection request records, owned by the connect-request task."""

import hashlib
import logging
from typing import Any, Optional

from outreach_core.domain.models import TaskKind
from outreach_core.domain.services.credentials import Account
from outreach_core.domain.services.profiles import normalize_profile_url
from outreach_core.domain.services.reconciliation import fields_for, merge_fields
from outreach_core.infrastructure.document_store import DocumentStore

logger = logging.getLogger(__name__)

COLLECTION = "ConnectionRequests"

# Statuses after which a connect job must not act again
SETTLED_STATUSES = frozenset({"sent", "already_connected", "already_pending"})


class ConnectionRequestRepository:
    """Per-profile record of connect-request outcomes for one account."""

    def __init__(self, store: DocumentStore, account: Account):
        self.store = store
        self.account = account

    def doc_id(self, profile_url: str) -> str:
        digest = hashlib.sha1(normalize_profile_url(profile_url).encode("utf-8")).hexdigest()
        return f"{self.account.bot_id}_{digest}"

    def get(self, profile_url: str) -> Optional[dict[str, Any]]:
        return self.store.get(COLLECTION, self.doc_id(profile_url))

    def is_settled(self, profile_url: str) -> bool:
        record = self.get(profile_url)
        return bool(record and record.get("status") in SETTLED_STATUSES)

    def record(
        self,
        profile_url: str,
        status: str,
        note: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> bool:
        """Merge an outcome into the profile's record.

        Returns:
            True if the record changed.
        """
        current = self.get(profile_url)
        fields: dict[str, Any] = {
            "profileUrl": normalize_profile_url(profile_url),
            "status": status,
            "note": note,
            "jobId": job_id,
        }
        if status == "sent":
            fields["sentAt"] = self.store.server_timestamp()

        # sentAt is set once, by the first successful send
        if current and current.get("sentAt") is not None:
            fields.pop("sentAt", None)

        _, changed = merge_fields(current, fields, fields_for(TaskKind.CONNECT_REQUEST))
        if changed:
            self.store.set(COLLECTION, self.doc_id(profile_url), fields, merge=True)
            logger.info(f"Connection request to {profile_url} recorded as {status}")
        return changed
