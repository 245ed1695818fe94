"""
Firestore-backed document store.

Documents are addressed as "collection/documentId". Fields whose name
ends in "Ref" hold document references in Firestore and plain path
strings everywhere else in the pipeline; conversion happens here.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core.exceptions import GoogleAPIError
from google.cloud.firestore_v1 import FieldFilter
from google.cloud.firestore_v1.document import DocumentReference

from travel_enrichment.config import Settings
from travel_enrichment.errors import PersistenceError
from travel_enrichment.logging_config import get_logger

logger = get_logger("document_store")

REF_SUFFIX = "Ref"


@dataclass(frozen=True)
class WriteOp:
    """A single document mutation. ``data=None`` deletes the document."""

    path: str
    data: Optional[Dict[str, Any]] = None

    @property
    def is_delete(self) -> bool:
        return self.data is None

    @classmethod
    def set(cls, path: str, data: Dict[str, Any]) -> "WriteOp":
        return cls(path, dict(data))

    @classmethod
    def delete(cls, path: str) -> "WriteOp":
        return cls(path, None)


def doc_path(collection: str, doc_id: str) -> str:
    return f"{collection}/{doc_id}"


def split_path(path: str) -> Tuple[str, str]:
    """Split "collection/documentId" into its two parts."""
    collection, _, doc_id = path.rpartition("/")
    return collection, doc_id


# ============================================================================
# Initialization
# ============================================================================

def init_firestore(settings: Settings):
    """
    Initialize the default Firebase app (once) and return a Firestore client.

    Uses the service-account file when GOOGLE_APPLICATION_CREDENTIALS
    is set, application default credentials otherwise.
    """
    if not firebase_admin._apps:
        if settings.google_application_credentials:
            cred = credentials.Certificate(settings.google_application_credentials)
        else:
            cred = credentials.ApplicationDefault()
        options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
        firebase_admin.initialize_app(cred, options)
        logger.info("Firebase app initialized", extra={"project": settings.firebase_project_id})
    return firestore.client()


# ============================================================================
# Store
# ============================================================================

class DocumentStore:
    """Thin adapter over a Firestore client."""

    def __init__(self, client):
        self._db = client

    # -- conversion ---------------------------------------------------------

    def _to_firestore(self, data: Dict[str, Any]) -> Dict[str, Any]:
        converted = {}
        for key, value in data.items():
            if key.endswith(REF_SUFFIX) and isinstance(value, str):
                value = self._db.document(value)
            converted[key] = value
        return converted

    @staticmethod
    def _from_firestore(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: value.path if isinstance(value, DocumentReference) else value
            for key, value in data.items()
        }

    # -- reads --------------------------------------------------------------

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        """Fetch a document by path; None if it does not exist."""
        try:
            snapshot = self._db.document(path).get()
        except GoogleAPIError as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e
        if not snapshot.exists:
            return None
        return self._from_firestore(snapshot.to_dict() or {})

    def query(
        self,
        collection: str,
        filters: Sequence[Tuple[str, str, Any]] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Run a filtered/ordered query against a collection.

        Args:
            collection: Collection name
            filters: (field, op, value) triples, combined with AND
            order_by: Field to order by
            descending: Order direction
            offset: Number of leading results to skip
            limit: Maximum number of results

        Returns:
            List of (document id, data) in query order
        """
        query = self._db.collection(collection)
        for field_path, op, value in filters:
            query = query.where(filter=FieldFilter(field_path, op, value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        try:
            return [(doc.id, self._from_firestore(doc.to_dict() or {})) for doc in query.stream()]
        except GoogleAPIError as e:
            raise PersistenceError(f"Query on {collection} failed: {e}") from e

    def stream(self, collection: str) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """Yield (document id, data) for every document of a collection."""
        try:
            for doc in self._db.collection(collection).stream():
                yield doc.id, self._from_firestore(doc.to_dict() or {})
        except GoogleAPIError as e:
            raise PersistenceError(f"Reading {collection} failed: {e}") from e

    # -- writes -------------------------------------------------------------

    def commit(self, ops: Sequence[WriteOp]) -> None:
        """Apply all operations as one atomic batch."""
        batch = self._db.batch()
        for op in ops:
            ref = self._db.document(op.path)
            if op.is_delete:
                batch.delete(ref)
            else:
                batch.set(ref, self._to_firestore(op.data))
        try:
            batch.commit()
        except GoogleAPIError as e:
            raise PersistenceError(f"Batch commit of {len(ops)} operations failed: {e}") from e
