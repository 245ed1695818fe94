"""
Internet-speed signal for a location mapping.

Cached records live at the mapping's internetSpeedRef. On a cache miss
the download and upload aggregates are queried concurrently; the first
failure (or the join timeout) fails the lookup without waiting for the
other query.
"""

import contextvars
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait

from pydantic import ValidationError

from travel_enrichment.api_clients import DOWNLOAD_TABLE, UPLOAD_TABLE
from travel_enrichment.document_store import WriteOp
from travel_enrichment.errors import SignalLookupError, ThroughputQueryError
from travel_enrichment.logging_config import get_logger, metrics
from travel_enrichment.models import InternetSpeed, LocationMapping

logger = get_logger("internet_speed")

SIGNAL = "internet_speed"


class InternetSpeedService:
    """Cache-first internet speed lookup."""

    def __init__(self, store, writer, throughput_client, timeout: float = 120.0):
        self.store = store
        self.writer = writer
        self.throughput = throughput_client
        self.timeout = timeout

    def get(self, mapping: LocationMapping) -> InternetSpeed:
        """
        Cached or freshly computed speed for a mapping.

        Raises:
            SignalLookupError: Missing ref, malformed cache entry, query failure or timeout
            PersistenceError: Caching the computed record failed
        """
        if not mapping.internet_speed_ref:
            raise SignalLookupError(SIGNAL, f"mapping {mapping.id} has no internet speed reference")

        cached = self.store.get(mapping.internet_speed_ref)
        if cached is not None:
            try:
                return InternetSpeed.model_validate(cached)
            except ValidationError as e:
                raise SignalLookupError(SIGNAL, f"malformed cache entry {mapping.internet_speed_ref}: {e}") from e

        speed = self.compute(mapping)
        self.writer.commit_all([WriteOp.set(mapping.internet_speed_ref, speed.to_document())]).raise_for_error()
        metrics.increment("speeds_computed")
        return speed

    def compute(self, mapping: LocationMapping) -> InternetSpeed:
        """Run the download and upload queries concurrently and join them."""
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="speed-query")
        try:
            futures = {
                # Each query runs in its own copy of the run context (request id)
                table: executor.submit(
                    contextvars.copy_context().run,
                    self.throughput.average_throughput, table, mapping, self.timeout,
                )
                for table in (DOWNLOAD_TABLE, UPLOAD_TABLE)
            }
            done, pending = wait(futures.values(), timeout=self.timeout, return_when=FIRST_EXCEPTION)

            for future in done:
                error = future.exception()
                if error is not None:
                    if isinstance(error, ThroughputQueryError):
                        raise SignalLookupError(SIGNAL, str(error)) from error
                    raise error
            if pending:
                raise SignalLookupError(
                    SIGNAL, f"throughput queries for {mapping.id} timed out after {self.timeout}s"
                )

            download = futures[DOWNLOAD_TABLE].result()
            upload = futures[UPLOAD_TABLE].result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            f"Computed internet speed for {mapping.id}",
            extra={"mapping_id": mapping.id, "download_mbps": download, "upload_mbps": upload}
        )
        return InternetSpeed(
            location_name=mapping.display_name or f"{mapping.city}, {mapping.country}",
            latitude=mapping.latitude,
            longitude=mapping.longitude,
            download_speed_mbps=download,
            upload_speed_mbps=upload,
            types=list(mapping.types),
        )
