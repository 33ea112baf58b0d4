"""Message thread records, keyed ``{bot_id}_{thread_id}``."""

import logging
from typing import Any, Optional

from outreach_core.domain.models import TaskKind
from outreach_core.domain.services.credentials import Account
from outreach_core.domain.services.reconciliation import fields_for, merge_fields
from outreach_core.infrastructure.document_store import DocumentStore

logger = logging.getLogger(__name__)

COLLECTION = "MessageThreads"


class ThreadRepository:
    """Threads discovered in one account's inbox."""

    def __init__(self, store: DocumentStore, account: Account):
        self.store = store
        self.account = account

    @property
    def prefix(self) -> str:
        return f"{self.account.bot_id}_"

    def doc_id(self, thread_id: str) -> str:
        return f"{self.prefix}{thread_id}"

    def list_threads(self) -> list[dict[str, Any]]:
        """Known threads, each with ``docId`` and ``threadId`` added."""
        threads = []
        for doc_id, data in self.store.query_prefix(COLLECTION, self.prefix):
            thread = dict(data)
            thread["docId"] = doc_id
            thread["threadId"] = data.get("Id") or doc_id[len(self.prefix):]
            threads.append(thread)
        return threads

    def get(self, thread_id: str) -> Optional[dict[str, Any]]:
        return self.store.get(COLLECTION, self.doc_id(thread_id))

    def plan_new_thread(
        self, thread_id: str, name: str, matched_profile_link: str
    ) -> tuple[str, dict[str, Any]]:
        """Build the batch entry creating a newly discovered thread."""
        return self.doc_id(thread_id), {
            "name": name,
            "Id": thread_id,
            "matchedProfileId": matched_profile_link,
            "createdAt": self.store.server_timestamp(),
        }

    def plan_message_update(
        self,
        thread: dict[str, Any],
        fields: dict[str, Any],
    ) -> Optional[tuple[str, dict[str, Any]]]:
        """Build the batch entry for a message refresh, or None if nothing changes."""
        _, changed = merge_fields(thread, fields, fields_for(TaskKind.INBOX_POLL))
        if not changed:
            return None
        return thread["docId"], fields

    def write_batch(self, entries: list[tuple[str, dict[str, Any]]]) -> None:
        """Write new threads and message refreshes in one batch.

        Entries for the same document are merged first, so a thread
        discovered and refreshed in one poll is written once.
        """
        merged: dict[str, dict[str, Any]] = {}
        for doc_id, fields in entries:
            merged.setdefault(doc_id, {}).update(fields)
        if merged:
            self.store.batch_update(COLLECTION, list(merged.items()), upsert=True)
            logger.info(f"Wrote {len(merged)} threads for {self.account.email}")

    def reply_recorded(self, thread_id: str, job_id: str) -> bool:
        thread = self.get(thread_id)
        return bool(thread and job_id in (thread.get("repliesSent") or {}))

    def record_reply(self, thread_id: str, job_id: str, entry: dict[str, Any]) -> bool:
        """Record a sent reply under ``repliesSent[job_id]``.

        Returns:
            True if the record changed.
        """
        thread = self.get(thread_id) or {}
        merged, changed = merge_fields(
            thread,
            {"repliesSent": {job_id: entry}},
            fields_for(TaskKind.REPLY),
        )
        if changed:
            self.store.set(
                COLLECTION,
                self.doc_id(thread_id),
                {"repliesSent": merged["repliesSent"]},
                merge=True,
            )
        return changed
