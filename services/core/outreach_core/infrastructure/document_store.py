"""Document store backing profile, thread and connection records.

A small key-value/document contract (get, set, update, prefix query,
batched update, server timestamp) with two implementations:

- ``SqlDocumentStore``: the ``documents`` table through SQLAlchemy
  (default, also used in tests).
- ``FirestoreDocumentStore``: Cloud Firestore through firebase-admin,
  for deployments that share records with the existing Firestore data.

Field names in ``update`` may be dotted paths (``repliesSent.<job_id>``)
to update one key of a nested map. Only single-document updates and a
single batch are atomic.
"""

import copy
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from sqlalchemy.orm import Session, sessionmaker

from outreach_core.config import Settings, get_settings
from outreach_core.domain.models import Document

logger = logging.getLogger(__name__)

# Firestore limits a batch to 500 writes
FIRESTORE_BATCH_LIMIT = 500


class DocumentNotFound(Exception):
    """Raised when updating a document that does not exist."""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"Document {collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class _ServerTimestamp:
    """Sentinel resolved to the write time by ``SqlDocumentStore``."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class DocumentStore(Protocol):
    """Contract consumed by the record repositories."""

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]: ...

    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None: ...

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...

    def query_prefix(self, collection: str, prefix: str) -> list[tuple[str, dict[str, Any]]]: ...

    def batch_update(
        self,
        collection: str,
        updates: list[tuple[str, dict[str, Any]]],
        upsert: bool = False,
    ) -> None: ...

    def server_timestamp(self) -> Any: ...


def _apply_fields(data: dict[str, Any], fields: dict[str, Any], now: str) -> dict[str, Any]:
    """Return a copy of ``data`` with dotted-path ``fields`` applied."""
    merged = copy.deepcopy(data)
    for path, value in fields.items():
        if value is SERVER_TIMESTAMP:
            value = now
        target = merged
        parts = path.split(".")
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        target[parts[-1]] = value
    return merged


def _resolve_timestamps(data: dict[str, Any], now: str) -> dict[str, Any]:
    resolved = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = now
        elif isinstance(value, dict):
            resolved[key] = _resolve_timestamps(value, now)
        else:
            resolved[key] = value
    return resolved


class SqlDocumentStore:
    """Document store over the ``documents`` table.

    Timestamps are stored as ISO 8601 UTC strings.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def server_timestamp(self) -> Any:
        return SERVER_TIMESTAMP

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        with self._session_factory() as session:
            doc = session.get(Document, (collection, doc_id))
            return copy.deepcopy(doc.data) if doc else None

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        now = self._now()
        with self._session_factory() as session, session.begin():
            doc = session.get(Document, (collection, doc_id))
            if doc is None:
                session.add(
                    Document(collection=collection, doc_id=doc_id, data=_resolve_timestamps(data, now))
                )
            elif merge:
                doc.data = {**doc.data, **_resolve_timestamps(data, now)}
            else:
                doc.data = _resolve_timestamps(data, now)

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        now = self._now()
        with self._session_factory() as session, session.begin():
            doc = session.get(Document, (collection, doc_id))
            if doc is None:
                raise DocumentNotFound(collection, doc_id)
            doc.data = _apply_fields(doc.data, fields, now)

    def query_prefix(self, collection: str, prefix: str) -> list[tuple[str, dict[str, Any]]]:
        with self._session_factory() as session:
            docs = (
                session.query(Document)
                .filter(
                    Document.collection == collection,
                    Document.doc_id >= prefix,
                    Document.doc_id < prefix + "\uffff",
                )
                .order_by(Document.doc_id.asc())
                .all()
            )
            return [(doc.doc_id, copy.deepcopy(doc.data)) for doc in docs]

    def batch_update(
        self,
        collection: str,
        updates: list[tuple[str, dict[str, Any]]],
        upsert: bool = False,
    ) -> None:
        """Apply all updates in one transaction.

        A missing document aborts the batch, unless ``upsert`` is set, in
        which case it is created from the update's fields.
        """
        if not updates:
            return
        now = self._now()
        with self._session_factory() as session, session.begin():
            for doc_id, fields in updates:
                doc = session.get(Document, (collection, doc_id))
                if doc is None:
                    if not upsert:
                        raise DocumentNotFound(collection, doc_id)
                    session.add(
                        Document(collection=collection, doc_id=doc_id, data=_apply_fields({}, fields, now))
                    )
                    continue
                doc.data = _apply_fields(doc.data, fields, now)


class FirestoreDocumentStore:
    """Document store over Cloud Firestore."""

    def __init__(self, client: Any):
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirestoreDocumentStore":
        import firebase_admin
        from firebase_admin import credentials, firestore

        if settings.firestore_emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = settings.firestore_emulator_host

        if not firebase_admin._apps:
            if settings.firestore_credentials_path:
                firebase_admin.initialize_app(
                    credentials.Certificate(settings.firestore_credentials_path)
                )
            else:
                firebase_admin.initialize_app()

        return cls(firestore.client())

    def server_timestamp(self) -> Any:
        from firebase_admin import firestore

        return firestore.SERVER_TIMESTAMP

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        snapshot = self._client.collection(collection).document(doc_id).get()
        return snapshot.to_dict() if snapshot.exists else None

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        self._client.collection(collection).document(doc_id).set(data, merge=merge)

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        from google.api_core.exceptions import NotFound

        try:
            self._client.collection(collection).document(doc_id).update(fields)
        except NotFound:
            raise DocumentNotFound(collection, doc_id)

    def query_prefix(self, collection: str, prefix: str) -> list[tuple[str, dict[str, Any]]]:
        from google.cloud.firestore_v1 import FieldFilter
        from google.cloud.firestore_v1.field_path import FieldPath

        ref = self._client.collection(collection)
        query = ref.where(
            filter=FieldFilter(FieldPath.document_id(), ">=", ref.document(prefix))
        ).where(
            filter=FieldFilter(FieldPath.document_id(), "<", ref.document(prefix + "\uf8ff"))
        )
        return [(snap.id, snap.to_dict()) for snap in query.stream()]

    def batch_update(
        self,
        collection: str,
        updates: list[tuple[str, dict[str, Any]]],
        upsert: bool = False,
    ) -> None:
        """Apply updates in Firestore batches of at most 500 writes.

        Upserts are merged sets, so their field names must be top-level.
        """
        ref = self._client.collection(collection)
        for start in range(0, len(updates), FIRESTORE_BATCH_LIMIT):
            batch = self._client.batch()
            for doc_id, fields in updates[start : start + FIRESTORE_BATCH_LIMIT]:
                if upsert:
                    batch.set(ref.document(doc_id), fields, merge=True)
                else:
                    batch.update(ref.document(doc_id), fields)
            batch.commit()


def build_document_store(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker[Session]] = None,
) -> DocumentStore:
    """Build the configured document store."""
    settings = settings or get_settings()

    if settings.document_store_backend == "firestore":
        logger.info("Using Firestore document store")
        return FirestoreDocumentStore.from_settings(settings)

    if session_factory is None:
        from outreach_core.infra.db import get_sync_session_factory

        session_factory = get_sync_session_factory()
    return SqlDocumentStore(session_factory)
