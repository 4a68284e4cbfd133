import pytest

from adinsight.services.csv_ingest import ingest_csv
from adinsight.services.metrics_engine import (
    KEYWORD_SAMPLE_LIMIT,
    MetricsAccumulator,
    analyze_records,
    calculate_metrics,
    enrich_record,
)
from conftest import SAMPLE_CSV, write_csv


def record(keyword, **fields):
    base = {
        "keyword": keyword,
        "impressions": 0.0,
        "clicks": 0.0,
        "cost": 0.0,
        "sales": 0.0,
        "conversions": 0.0,
    }
    base.update(fields)
    enriched, _ = enrich_record(base)
    return enriched


class TestCalculateMetrics:
    def test_all_metrics_when_denominators_positive(self):
        metrics = calculate_metrics(
            {"impressions": 1000, "clicks": 50, "cost": 25, "sales": 100, "conversions": 5}
        )

        assert metrics["calculated_ctr"] == pytest.approx(5.0)
        assert metrics["calculated_cpc"] == pytest.approx(0.5)
        assert metrics["calculated_cpm"] == pytest.approx(25.0)
        assert metrics["calculated_roas"] == pytest.approx(4.0)
        assert metrics["calculated_acos"] == pytest.approx(25.0)
        assert metrics["calculated_conversion_rate"] == pytest.approx(10.0)

    def test_ctr_absent_when_no_impressions(self):
        metrics = calculate_metrics({"impressions": 0, "clicks": 0, "cost": 3, "sales": 0})
        assert "calculated_ctr" not in metrics
        assert "calculated_cpm" not in metrics
        assert "calculated_acos" not in metrics

    def test_zero_clicks_give_zero_ctr(self):
        metrics = calculate_metrics({"impressions": 50, "clicks": 0, "cost": 5, "sales": 0})
        assert metrics["calculated_ctr"] == 0.0
        assert metrics["calculated_roas"] == 0.0
        assert "calculated_cpc" not in metrics


class TestAccumulator:
    def test_averages_only_over_defined_values(self):
        accumulator = MetricsAccumulator()
        accumulator.add({"keyword": "a", "calculated_ctr": 10.0})
        accumulator.add({"keyword": "b"})

        summary = accumulator.summary()

        assert summary["averageCTR"] == 10.0
        assert summary["averageROAS"] is None
        assert summary["rowCount"] == 2

    def test_ties_rank_by_source_order(self):
        records = [
            record("first", impressions=100, clicks=10, cost=10, sales=30),
            record("second", impressions=100, clicks=10, cost=10, sales=30),
            record("best", impressions=100, clicks=10, cost=10, sales=50),
        ]

        result = analyze_records(records, top_n=2)

        assert [r["keyword"] for r in result["topPerformers"]["byROAS"]] == ["best", "first"]
        assert [r["keyword"] for r in result["bottomPerformers"]["byROAS"]] == ["first", "second"]

    def test_bottom_acos_lists_highest_acos_first(self):
        records = [
            record("cheap", impressions=100, clicks=10, cost=10, sales=100),
            record("costly", impressions=100, clicks=10, cost=90, sales=100),
        ]

        result = analyze_records(records)

        assert [r["keyword"] for r in result["bottomPerformers"]["byACOS"]] == ["costly", "cheap"]

    def test_sales_ranking_skips_zero_sales(self):
        records = [record("none", impressions=10, clicks=1, cost=1, sales=0)]
        result = analyze_records(records)
        assert result["topPerformers"]["bySales"] == []

    def test_trends_patterns_and_anomalies(self):
        records = [
            record("pricey", impressions=1000, clicks=5, cost=150, sales=200, conversions=2),
            record("viral", impressions=100, clicks=20, cost=10, sales=40, conversions=4),
            record("dud", impressions=100, clicks=1, cost=10, sales=5),
        ]

        result = analyze_records(records)

        assert result["trends"] == {
            "highCostKeywords": 1,
            "lowCTRKeywords": 1,
            "highACOSKeywords": 2,
            "zeroConversionKeywords": 1,
        }
        patterns = {p["type"]: p for p in result["patterns"]}
        assert patterns["high_ctr"]["keywords"] == ["viral"]
        assert patterns["high_roas"]["keywords"] == ["viral"]
        anomalies = {a["type"]: a for a in result["anomalies"]}
        assert anomalies["zero_conversions"]["keywords"] == ["dud"]
        assert anomalies["high_acos"]["count"] == 2

    def test_keyword_samples_are_capped(self):
        records = [record(f"kw{i}", impressions=10, clicks=1, cost=1) for i in range(40)]

        result = analyze_records(records)

        zero = next(a for a in result["anomalies"] if a["type"] == "zero_conversions")
        assert zero["count"] == 40
        assert len(zero["keywords"]) == KEYWORD_SAMPLE_LIMIT


class TestEndToEnd:
    def test_sample_dataset(self, tmp_path):
        path = write_csv(tmp_path / "sample.csv", SAMPLE_CSV)
        records = []

        result = ingest_csv(path, on_batch=records.extend)

        assert result.stats.total_rows == 3
        assert result.stats.discarded_rows == 1
        assert result.stats.discard_reasons["clicks_exceed_impressions"] == 1
        summary = result.analysis["metrics"]
        assert summary["rowCount"] == 2
        assert summary["totalImpressions"] == 150
        assert summary["totalClicks"] == 10
        by_keyword = {r["keyword"]: r["row_data"] for r in records}
        assert set(by_keyword) == {"a", "b"}
        assert by_keyword["a"]["calculated_ctr"] == pytest.approx(10.0)
        assert by_keyword["a"]["calculated_roas"] == pytest.approx(3.0)
        assert by_keyword["b"]["calculated_ctr"] == 0.0
        assert result.analysis["trends"]["zeroConversionKeywords"] == 2

    def test_rerun_is_idempotent(self, tmp_path):
        path = write_csv(tmp_path / "sample.csv", SAMPLE_CSV)

        first = ingest_csv(path)
        second = ingest_csv(path)

        assert first.analysis == second.analysis
        assert first.stats == second.stats
