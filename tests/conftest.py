"""
Shared fakes for the pipeline tests: an in-memory document store and
stand-ins for the place-search, photo and throughput providers.
"""

import copy
from typing import Dict, List, Optional

import pytest

from travel_enrichment.api_clients import PlaceCandidate
from travel_enrichment.bulk_writer import BulkWriter
from travel_enrichment.document_store import split_path
from travel_enrichment.errors import (
    PersistenceError,
    PhotoProviderError,
    ThroughputQueryError,
)
from travel_enrichment.logging_config import metrics


def _field(data: dict, dotted: str):
    value = data
    for part in dotted.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


class FakeDocumentStore:
    """In-memory stand-in for DocumentStore with commit failure injection."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self.commits: List[list] = []
        self.fail_next_commits = 0

    # test helpers
    def put(self, collection: str, doc_id: str, data: dict) -> None:
        self.collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def ids(self, collection: str) -> List[str]:
        return list(self.collections.get(collection, {}))

    def doc(self, collection: str, doc_id: str) -> Optional[dict]:
        return self.collections.get(collection, {}).get(doc_id)

    # store interface
    def get(self, path: str) -> Optional[dict]:
        collection, doc_id = split_path(path)
        data = self.doc(collection, doc_id)
        return copy.deepcopy(data) if data is not None else None

    def query(self, collection, filters=(), order_by=None, descending=False, offset=0, limit=None):
        docs = list(self.collections.get(collection, {}).items())
        for field_path, op, value in filters:
            assert op == "==", "fake store only supports equality filters"
            docs = [(i, d) for i, d in docs if _field(d, field_path) == value]
        if order_by:
            docs = [(i, d) for i, d in docs if _field(d, order_by) is not None]
            docs.sort(key=lambda item: _field(item[1], order_by), reverse=descending)
        docs = docs[offset:]
        if limit is not None:
            docs = docs[:limit]
        return [(i, copy.deepcopy(d)) for i, d in docs]

    def stream(self, collection):
        for doc_id, data in list(self.collections.get(collection, {}).items()):
            yield doc_id, copy.deepcopy(data)

    def commit(self, ops) -> None:
        if self.fail_next_commits:
            self.fail_next_commits -= 1
            raise PersistenceError("injected commit failure")
        for op in ops:
            collection, doc_id = split_path(op.path)
            if op.is_delete:
                self.collections.get(collection, {}).pop(doc_id, None)
            else:
                self.put(collection, doc_id, op.data)
        self.commits.append(list(ops))


def make_candidate(
    place_id: str = "place-1",
    name: str = "Kraków",
    formatted_address: str = "Kraków, Poland",
    lat: float = 50.06,
    lng: float = 19.94,
    types=("locality", "political"),
) -> PlaceCandidate:
    return PlaceCandidate.model_validate({
        "place_id": place_id,
        "name": name,
        "formatted_address": formatted_address,
        "geometry": {"location": {"lat": lat, "lng": lng}},
        "types": list(types),
    })


class FakePlaceSearch:
    """Returns canned candidates per (city, country); records every call."""

    def __init__(self, results=None, error: Optional[Exception] = None):
        self.results = results or {}
        self.error = error
        self.calls = []

    def find_place(self, city, country):
        self.calls.append((city, country))
        if self.error is not None:
            raise self.error
        return list(self.results.get((city, country), []))


class FakePhotoClient:
    def __init__(self, urls=None, error: Optional[Exception] = None):
        self.urls = urls if urls is not None else [f"https://images.example/{i}.jpg" for i in range(15)]
        self.error = error
        self.queries = []

    def search_photos(self, query, per_page=15):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        if len(self.urls) < 2:
            raise PhotoProviderError("too few photos")
        return list(self.urls)


class FakeThroughputClient:
    """Per-table averages; a value that is an exception gets raised instead."""

    def __init__(self, values=None):
        self.values = values or {}
        self.calls = []

    def average_throughput(self, table, mapping, timeout=120.0):
        self.calls.append(table)
        value = self.values.get(table)
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value()
        if value is None:
            raise ThroughputQueryError(f"no {table} data")
        return value


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def store():
    return FakeDocumentStore()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def writer(store, sleeps):
    return BulkWriter(store, group_size=500, max_attempts=3, sleep=sleeps.append)
