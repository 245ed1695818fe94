"""
Tests for the cost-of-living analyzer.
"""

import pytest

from travel_enrichment.col_analyzer import CostOfLivingAnalyzer, build_samples, compute_analytics
from travel_enrichment.errors import PersistenceError, RetryExhausted
from travel_enrichment.models import METRIC_EXTRACTORS, CostOfLivingRecord


def record(city, country, **prices):
    return CostOfLivingRecord.model_validate({"city": city, "country": country, **prices})


class TestMetricExtractors:
    """The tracked metric table."""

    def test_twenty_eight_metrics(self):
        names = [name for name, _ in METRIC_EXTRACTORS]
        assert len(names) == 28
        assert len(set(names)) == 28
        assert "mealInexpensiveRestaurant" in names
        assert "utilities85sqmApartment" in names
        assert "avgNetSalary" in names
        # Market staples are stored but not scored
        assert "milk1L" not in names

    def test_extractor_reads_stored_field(self):
        extract = dict(METRIC_EXTRACTORS)["apt1BedCityCenter"]
        assert extract(record("A", "B", apt1BedCityCenter=900.0)) == 900.0


class TestComputeAnalytics:
    """Tests for compute_analytics."""

    def test_percentile_scores_per_metric(self):
        records = [
            record("Cheap", "Land", mealInexpensiveRestaurant=5.0),
            record("Mid", "Land", mealInexpensiveRestaurant=10.0),
            record("Dear", "Land", mealInexpensiveRestaurant=20.0),
        ]
        results = compute_analytics(records)
        scores = [r.scores["mealInexpensiveRestaurant"] for r in results]
        assert scores == pytest.approx([0.0, 100 / 3, 200 / 3])

    def test_non_positive_values_are_missing(self):
        records = [
            record("A", "X", taxiStart=2.0),
            record("B", "X", taxiStart=0.0),
            record("C", "X", taxiStart=-1.0),
            record("D", "X", taxiStart=4.0),
        ]
        results = compute_analytics(records)
        assert "taxiStart" not in results[1].scores
        assert "taxiStart" not in results[1].stats
        assert "taxiStart" not in results[2].scores
        # Missing values are excluded from everyone's sample
        assert results[3].scores["taxiStart"] == pytest.approx(50.0)
        assert results[0].stats["taxiStart"].mean == pytest.approx(3.0)

    def test_output_is_sparse(self):
        results = compute_analytics([record("A", "X", monthlyPass=40.0)])
        assert set(results[0].scores) == {"monthlyPass", "overall"}
        assert set(results[0].stats) == {"monthlyPass"}

    def test_stats_shared_by_all_locations(self):
        records = [
            record("A", "X", gasoline1L=1.0),
            record("B", "X", gasoline1L=2.0),
            record("C", "X", gasoline1L=2.0),
            record("D", "X", gasoline1L=3.0),
        ]
        results = compute_analytics(records)
        stats = results[0].stats["gasoline1L"]
        assert stats.mean == pytest.approx(2.0)
        assert stats.median == pytest.approx(2.0)
        assert stats.mode == 2.0
        assert all(r.stats["gasoline1L"] == stats for r in results)

    def test_overall_excludes_salary(self):
        records = [
            record("A", "X", monthlyPass=10.0, taxiStart=1.0, avgNetSalary=3000.0),
            record("B", "X", monthlyPass=20.0, taxiStart=2.0, avgNetSalary=500.0),
        ]
        results = compute_analytics(records)
        b = results[1]
        assert b.scores["avgNetSalary"] == pytest.approx(0.0)
        assert b.scores["overall"] == pytest.approx(50.0)
        assert results[0].scores["avgNetSalary"] == pytest.approx(50.0)
        assert results[0].scores["overall"] == pytest.approx(0.0)

    def test_salary_only_has_no_overall(self):
        results = compute_analytics([record("A", "X", avgNetSalary=1000.0)])
        assert "overall" not in results[0].scores
        assert results[0].overall is None

    def test_samples_sorted(self):
        samples = build_samples([
            record("A", "X", cinemaTicket=9.0, sodaRestaurant=3.0),
            record("B", "X", sodaRestaurant=1.0),
        ])
        assert samples["sodaRestaurant"] == [1.0, 3.0]
        assert "cinemaTicket" not in samples


class TestCostOfLivingAnalyzer:
    """Tests for the stored analysis run."""

    def test_writes_one_document_per_location(self, store, writer):
        store.put("cost-of-living", "krakow-poland", {"city": "Kraków", "country": "Poland", "monthlyPass": 25.0})
        store.put("cost-of-living", "lisbon-portugal", {"city": "Lisbon", "country": "Portugal", "monthlyPass": 40.0})

        analytics = CostOfLivingAnalyzer(store, writer).analyze_and_store()

        assert len(analytics) == 2
        assert sorted(store.ids("cost-of-living-analytics")) == ["krakow-poland", "lisbon-portugal"]
        doc = store.doc("cost-of-living-analytics", "lisbon-portugal")
        assert doc["city"] == "Lisbon"
        assert doc["scores"]["monthlyPass"] == pytest.approx(50.0)
        assert doc["scores"]["overall"] == pytest.approx(50.0)
        assert set(doc["stats"]["monthlyPass"]) == {"mean", "median", "mode", "standardDeviation"}

    def test_malformed_record_aborts(self, store, writer):
        store.put("cost-of-living", "good-one", {"city": "Good", "country": "One", "monthlyPass": 25.0})
        store.put("cost-of-living", "bad-one", {"city": "Bad", "country": "One", "monthlyPass": "lots"})

        with pytest.raises(PersistenceError):
            CostOfLivingAnalyzer(store, writer).analyze_and_store()
        assert store.ids("cost-of-living-analytics") == []

    def test_write_failure_propagates(self, store, writer):
        store.put("cost-of-living", "krakow-poland", {"city": "Kraków", "country": "Poland", "monthlyPass": 25.0})
        store.fail_next_commits = 3

        with pytest.raises(RetryExhausted):
            CostOfLivingAnalyzer(store, writer).analyze_and_store()
