"""
Tests for grouped, retried bulk writes.
"""

import pytest

from travel_enrichment.bulk_writer import BulkWriter, partition, rename_unit
from travel_enrichment.document_store import WriteOp
from travel_enrichment.errors import PersistenceError, RetryExhausted
from travel_enrichment.logging_config import metrics


def ops(n, collection="things"):
    return [WriteOp.set(f"{collection}/doc{i}", {"n": i}) for i in range(n)]


class TestPartition:
    """Tests for splitting write units into groups."""

    def test_groups_bounded_by_size(self):
        groups = partition(ops(1201), 500)
        assert [len(g) for g in groups] == [500, 500, 201]

    def test_units_never_split(self):
        units = ops(499) + [rename_unit("things/old", "things/new", {"x": 1})]
        groups = partition(units, 500)
        assert [len(g) for g in groups] == [499, 2]
        assert groups[1][0].is_delete
        assert groups[1][1].path == "things/new"

    def test_oversized_unit_rejected(self):
        with pytest.raises(ValueError):
            partition([tuple(ops(3))], 2)

    def test_empty_input(self):
        assert partition([], 500) == []


class TestBulkWriter:
    """Tests for BulkWriter.commit_all."""

    def test_commits_all_groups(self, store, sleeps):
        writer = BulkWriter(store, group_size=2, sleep=sleeps.append)
        result = writer.commit_all(ops(5))
        assert result.ok
        assert result.succeeded == 5
        assert result.failed == 0
        assert len(store.commits) == 3
        assert len(store.ids("things")) == 5
        assert sleeps == []
        assert metrics.get_counter("documents_written") == 5

    def test_fail_twice_then_succeed(self, store, writer, sleeps):
        """Two failures back off 1s then 2s; the group is committed exactly once."""
        store.fail_next_commits = 2
        result = writer.commit_all(ops(3))
        assert result.ok
        assert result.succeeded == 3
        assert len(store.commits) == 1
        assert sleeps == [1, 2]

    def test_exhausted_retries_stop_the_run(self, store, sleeps):
        writer = BulkWriter(store, group_size=2, max_attempts=3, sleep=sleeps.append)
        # First group succeeds, second fails on every attempt
        original_commit = store.commit
        calls = {"n": 0}

        def flaky_commit(batch):
            calls["n"] += 1
            if calls["n"] > 1:
                raise PersistenceError("unavailable")
            original_commit(batch)

        store.commit = flaky_commit
        result = writer.commit_all(ops(5))

        assert not result.ok
        assert result.succeeded == 2
        assert result.failed == 3
        assert isinstance(result.error, RetryExhausted)
        assert result.error.attempts == 3
        assert isinstance(result.error.last_error, PersistenceError)
        # Third group never attempted
        assert calls["n"] == 4
        assert sleeps == [1, 2]
        # Earlier group stays committed
        assert sorted(store.ids("things")) == ["doc0", "doc1"]

    def test_raise_for_error(self, store, writer):
        store.fail_next_commits = 3
        result = writer.commit_all(ops(1))
        with pytest.raises(RetryExhausted):
            result.raise_for_error()

    def test_rename_unit_moves_document(self, store, writer):
        store.put("things", "Old Id", {"v": 1})
        writer.commit_all([rename_unit("things/Old Id", "things/old-id", {"v": 1})]).raise_for_error()
        assert store.ids("things") == ["old-id"]
        assert len(store.commits) == 1

    def test_invalid_group_size(self, store):
        with pytest.raises(ValueError):
            BulkWriter(store, group_size=501)
        with pytest.raises(ValueError):
            BulkWriter(store, group_size=0)
