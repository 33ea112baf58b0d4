"""Profile records owned by an operator account.

Two record layouts exist and both are supported behind one interface:

- flat: ``ProfileSearches/{bot_id}`` with a ``profiles`` list
- campaign: ``Campaigns/{campaign_id}/bot_accounts/{bot_id}`` with the
  same list plus ``lastExtracted`` and ``extractionStatus``

The whole profile list lives in one document, so a batch reconciliation
is a single document write.
"""

import logging
from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit

from outreach_core.domain.services.credentials import Account
from outreach_core.domain.services.reconciliation import merge_profile_outcomes
from outreach_core.infrastructure.document_store import DocumentStore

logger = logging.getLogger(__name__)

FLAT_COLLECTION = "ProfileSearches"


def normalize_profile_url(url: str) -> str:
    """Canonical form of a profile link: no query or fragment, trailing slash."""
    parts = urlsplit(url.strip())
    path = parts.path if parts.path.endswith("/") else parts.path + "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


class ProfileRepository:
    """Reads and reconciles the profile list of one account."""

    def __init__(
        self,
        store: DocumentStore,
        account: Account,
        campaign_id: Optional[str] = None,
    ):
        self.store = store
        self.account = account
        self.campaign_id = campaign_id or account.campaign_id

    @property
    def layout(self) -> str:
        return "campaign" if self.campaign_id else "flat"

    @property
    def collection(self) -> str:
        if self.campaign_id:
            return f"Campaigns/{self.campaign_id}/bot_accounts"
        return FLAT_COLLECTION

    def _document(self) -> Optional[dict[str, Any]]:
        return self.store.get(self.collection, self.account.bot_id)

    def list_profiles(self) -> list[dict[str, Any]]:
        doc = self._document()
        if doc is None:
            logger.info(f"No {self.layout} profile document for {self.account.email}")
            return []
        return list(doc.get("profiles") or [])

    def get_profile(self, link: str) -> Optional[dict[str, Any]]:
        wanted = normalize_profile_url(link)
        for profile in self.list_profiles():
            if profile.get("link") and normalize_profile_url(profile["link"]) == wanted:
                return profile
        return None

    def reconcile(
        self,
        kind: str,
        outcomes: dict[str, dict[str, Any]],
        extra: Optional[dict[str, Any]] = None,
    ) -> list[str]:
        """Merge per-link outcomes for ``kind`` and write the document once.

        Args:
            kind: Task kind producing the outcomes (decides owned fields).
            outcomes: Profile link -> observed field values.
            extra: Document-level fields written with the batch.

        Returns:
            Links whose profile changed. Nothing is written when no
            profile changed and no ``extra`` fields are given.
        """
        doc = self._document()
        if doc is None:
            logger.warning(f"Cannot reconcile {kind}: no profile document for {self.account.email}")
            return []

        profiles, changed_links = merge_profile_outcomes(list(doc.get("profiles") or []), outcomes, kind)

        if not changed_links and not extra:
            logger.debug(f"Reconciliation of {kind} for {self.account.email} changed nothing")
            return []

        fields: dict[str, Any] = dict(extra or {})
        if changed_links:
            fields["profiles"] = profiles
        self.store.update(self.collection, self.account.bot_id, fields)

        logger.info(
            f"Reconciled {kind} for {self.account.email}: {len(changed_links)} profiles changed"
        )
        return changed_links
