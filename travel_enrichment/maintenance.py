"""
Collection maintenance workflows: document-id normalization and
collection copies (e.g. staging -> live).
"""

from travel_enrichment.bulk_writer import BulkWriteResult, rename_unit
from travel_enrichment.document_store import WriteOp, doc_path
from travel_enrichment.logging_config import get_logger
from travel_enrichment.slugs import clean_document_id

logger = get_logger("maintenance")


def normalize_document_ids(store, writer, collection: str) -> BulkWriteResult:
    """
    Move every document whose id is not normalized to its cleaned id.

    Each move is a delete(old) + set(new) pair committed in one group.
    Documents whose id cleans to nothing are left in place.
    """
    units = []
    for doc_id, data in store.stream(collection):
        new_id = clean_document_id(doc_id)
        if new_id == doc_id:
            continue
        if not new_id:
            logger.warning(f"Document id {doc_id!r} has no usable characters", extra={"doc_id": doc_id})
            continue
        units.append(rename_unit(doc_path(collection, doc_id), doc_path(collection, new_id), data))

    logger.info(
        f"Normalizing {len(units)} document ids in {collection}",
        extra={"collection": collection, "rename_count": len(units)}
    )
    return writer.commit_all(units)


def copy_collection(store, writer, source: str, destination: str) -> BulkWriteResult:
    """Copy every document of source into destination under the same id."""
    ops = [
        WriteOp.set(doc_path(destination, doc_id), data)
        for doc_id, data in store.stream(source)
    ]
    logger.info(
        f"Copying {len(ops)} documents from {source} to {destination}",
        extra={"source": source, "destination": destination, "document_count": len(ops)}
    )
    return writer.commit_all(ops)
