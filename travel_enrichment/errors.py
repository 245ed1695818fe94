"""
Exception taxonomy for the enrichment pipeline.

Propagation:
- ResolutionError aborts enrichment of a single destination (logged, skipped).
- SignalLookupError degrades one field of one destination and is never fatal.
- PersistenceError / RetryExhausted terminate the enclosing run.
- Provider client errors are raised at the client boundary and translated
  by the calling component into one of the above.
"""

from typing import Optional


class EnrichmentError(Exception):
    """Base class for all pipeline errors."""
    pass


class ResolutionError(EnrichmentError):
    """No canonical location mapping could be obtained for a place."""

    def __init__(self, city: str, country: str, reason: str = ""):
        self.city = city
        self.country = country
        self.reason = reason
        message = f"Could not resolve location {city!r}, {country!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SignalLookupError(EnrichmentError):
    """A single signal fetch failed or returned malformed data."""

    def __init__(self, signal: str, message: str):
        self.signal = signal
        super().__init__(f"{signal} lookup failed: {message}")


class PersistenceError(EnrichmentError):
    """Document store read or write failure."""
    pass


class RetryExhausted(PersistenceError):
    """A bulk commit group failed after the maximum number of attempts."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Bulk commit failed after {attempts} attempts: {last_error}")


# ============================================================================
# Provider client errors
# ============================================================================

class PlaceSearchError(EnrichmentError):
    """Place-search provider call failed."""
    pass


class PhotoProviderError(EnrichmentError):
    """Photo provider call failed or returned too few photos."""
    pass


class ThroughputQueryError(EnrichmentError):
    """Aggregate throughput query failed or returned no value."""
    pass
