"""
Tests for the destination ranking combiner.
"""

import pandas as pd
import pytest

from travel_enrichment.config import RankingConfig
from travel_enrichment.ranking import (
    REPORT_COLUMNS,
    DestinationRankingCombiner,
    load_inputs,
    ranking_frame,
    write_ranking_report,
)


class TestCombine:
    """Tests for DestinationRankingCombiner.combine."""

    def test_average_of_safety_and_inverted_cost(self):
        combiner = DestinationRankingCombiner(RankingConfig())
        safety = [("a-x", 80.0), ("b-x", 60.0)]
        cost = [("a-x", 30.0), ("b-x", 70.0)]

        ranked = combiner.combine(safety, cost)

        assert [r.id for r in ranked] == ["a-x", "b-x"]
        assert ranked[0].inverted_cost_score == pytest.approx(70.0)
        assert ranked[0].average_score == pytest.approx(75.0)
        assert ranked[1].average_score == pytest.approx(45.0)
        assert ranked[0].country == "x"

    def test_sorted_descending(self):
        combiner = DestinationRankingCombiner(RankingConfig())
        safety = [("a-x", 10.0), ("b-y", 90.0), ("c-z", 50.0)]
        cost = [("a-x", 50.0), ("b-y", 50.0), ("c-z", 50.0)]

        scores = [r.average_score for r in combiner.combine(safety, cost)]

        assert scores == sorted(scores, reverse=True)

    def test_ties_keep_cost_order(self):
        combiner = DestinationRankingCombiner(RankingConfig())
        safety = [("a-x", 50.0), ("b-y", 50.0)]
        cost = [("b-y", 40.0), ("a-x", 40.0)]

        assert [r.id for r in combiner.combine(safety, cost)] == ["b-y", "a-x"]

    def test_missing_safety_skipped(self):
        combiner = DestinationRankingCombiner(RankingConfig())
        ranked = combiner.combine([("a-x", 70.0)], [("a-x", 10.0), ("nosafety-x", 0.0)])
        assert [r.id for r in ranked] == ["a-x"]

    def test_excluded_country_never_appears(self):
        combiner = DestinationRankingCombiner(RankingConfig(excluded_countries={"russia"}))
        safety = [("moscow-russia", 99.0), ("lisbon-portugal", 60.0)]
        cost = [("moscow-russia", 1.0), ("lisbon-portugal", 50.0)]

        ranked = combiner.combine(safety, cost)

        assert [r.id for r in ranked] == ["lisbon-portugal"]

    def test_country_cap_keeps_first_seen(self):
        combiner = DestinationRankingCombiner(RankingConfig(country_caps={"india": 10}))
        ids = [f"city{i}-india" for i in range(15)]
        safety = [(i, 50.0) for i in ids]
        cost = [(i, float(n)) for n, i in enumerate(ids)]

        ranked = combiner.combine(safety, cost)

        assert len(ranked) == 10
        assert {r.id for r in ranked} == set(ids[:10])

    def test_country_cap_follows_input_order_not_cost(self):
        combiner = DestinationRankingCombiner(RankingConfig(country_caps={"india": 10}))
        ids = [f"city{i}-india" for i in range(15)]
        safety = [(i, 50.0) for i in ids]
        # Most expensive first: the five cheapest come last and are cut
        cost = [(i, float(90 - n)) for n, i in enumerate(ids)]

        ranked = combiner.combine(safety, cost)

        kept = {r.id for r in ranked}
        assert kept == set(ids[:10])
        cheapest = sorted(cost, key=lambda pair: pair[1])[:10]
        assert kept != {i for i, _ in cheapest}

    def test_default_cap(self):
        combiner = DestinationRankingCombiner(RankingConfig(default_cap=2))
        ids = ["a-peru", "b-peru", "c-peru"]
        ranked = combiner.combine([(i, 50.0) for i in ids], [(i, 50.0) for i in ids])
        assert [r.id for r in ranked] == ["a-peru", "b-peru"]

    def test_records_without_safety_do_not_use_cap(self):
        combiner = DestinationRankingCombiner(RankingConfig(default_cap=1))
        ranked = combiner.combine([("b-peru", 50.0)], [("a-peru", 10.0), ("b-peru", 20.0)])
        assert [r.id for r in ranked] == ["b-peru"]

    def test_empty_inputs(self):
        assert DestinationRankingCombiner().combine([], []) == []


class TestRankingConfig:
    """Tests for the immutable ranking configuration."""

    def test_cap_lookup(self):
        config = RankingConfig(country_caps={"india": 10}, default_cap=3)
        assert config.cap_for("india") == 10
        assert config.cap_for("peru") == 3

    def test_tables_are_read_only(self):
        caps = {"india": 10}
        config = RankingConfig(country_caps=caps, excluded_countries={"russia"})
        caps["india"] = 1
        assert config.cap_for("india") == 10
        with pytest.raises(TypeError):
            config.country_caps["india"] = 2
        assert isinstance(config.excluded_countries, frozenset)


class TestLoadInputs:
    """Tests for reading ranking inputs from the store."""

    def test_orders_and_limits(self, store):
        for doc_id, score in [("a-x", 40), ("b-x", 90), ("c-x", 70)]:
            store.put("city-safety", doc_id, {"score": score})
        store.put("cost-of-living-analytics", "a-x", {"scores": {"overall": 55.0}})
        store.put("cost-of-living-analytics", "b-x", {"scores": {"overall": 12.5}})
        store.put("cost-of-living-analytics", "c-x", {"scores": {"monthlyPass": 10.0}})

        safety, cost = load_inputs(store, 2)

        assert safety == [("b-x", 90.0), ("c-x", 70.0)]
        assert cost == [("b-x", 12.5), ("a-x", 55.0)]


class TestRankingReport:
    """Tests for the CSV ranking report."""

    def test_frame_columns(self):
        ranked = DestinationRankingCombiner(RankingConfig()).combine([("a-x", 80.0)], [("a-x", 30.0)])
        frame = ranking_frame(ranked)
        assert list(frame.columns) == REPORT_COLUMNS
        assert frame.iloc[0]["averageScore"] == pytest.approx(75.0)

    def test_writes_csv(self, tmp_path):
        ranked = DestinationRankingCombiner(RankingConfig()).combine(
            [("a-x", 80.0), ("b-x", 60.0)],
            [("a-x", 30.0), ("b-x", 70.0)],
        )
        path = write_ranking_report(ranked, tmp_path / "out" / "ranking.csv")

        frame = pd.read_csv(path)
        assert list(frame.columns) == REPORT_COLUMNS
        assert list(frame["id"]) == ["a-x", "b-x"]
        assert list(frame["averageScore"]) == [75.0, 45.0]

    def test_empty_report_has_header(self, tmp_path):
        path = write_ranking_report([], tmp_path / "empty.csv")
        assert path.read_text().strip() == ",".join(REPORT_COLUMNS)
