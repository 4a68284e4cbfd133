"""Derived advertising metrics and streaming aggregate analysis."""

from __future__ import annotations

import heapq
from typing import Any, Iterable

# (output key, numerator, denominator, scale)
DERIVED_METRICS = (
    ("calculated_ctr", "clicks", "impressions", 100.0),
    ("calculated_cpc", "cost", "clicks", 1.0),
    ("calculated_cpm", "cost", "impressions", 1000.0),
    ("calculated_roas", "sales", "cost", 1.0),
    ("calculated_acos", "cost", "sales", 100.0),
    ("calculated_conversion_rate", "conversions", "clicks", 100.0),
)

SUMMARY_AVERAGES = (
    ("averageCTR", "calculated_ctr"),
    ("averageCPC", "calculated_cpc"),
    ("averageCPM", "calculated_cpm"),
    ("averageROAS", "calculated_roas"),
    ("averageACOS", "calculated_acos"),
    ("averageConversionRate", "calculated_conversion_rate"),
)

SUMMARY_TOTALS = (
    ("totalImpressions", "impressions"),
    ("totalClicks", "clicks"),
    ("totalCost", "cost"),
    ("totalSales", "sales"),
    ("totalConversions", "conversions"),
)

# (group, label, field, highest first, require > 0)
RANKINGS = (
    ("topPerformers", "byROAS", "calculated_roas", True, False),
    ("topPerformers", "byCTR", "calculated_ctr", True, False),
    ("topPerformers", "bySales", "sales", True, True),
    ("topPerformers", "byConversions", "conversions", True, True),
    ("bottomPerformers", "byROAS", "calculated_roas", False, False),
    ("bottomPerformers", "byCTR", "calculated_ctr", False, False),
    # High ACOS is the poor end of that scale
    ("bottomPerformers", "byACOS", "calculated_acos", True, False),
)

HIGH_COST_THRESHOLD = 100.0
LOW_CTR_THRESHOLD = 1.0
HIGH_ACOS_THRESHOLD = 50.0
HIGH_CTR_THRESHOLD = 10.0
HIGH_ROAS_THRESHOLD = 3.0
KEYWORD_SAMPLE_LIMIT = 25

DEFAULT_TOP_N = 10


def calculate_metrics(row: dict[str, Any]) -> dict[str, float]:
    """Return the derived metrics that are defined for ``row``.

    A metric is present only when its denominator is positive and its
    numerator is known.
    """
    metrics: dict[str, float] = {}
    for key, numerator, denominator, scale in DERIVED_METRICS:
        top = row.get(numerator)
        bottom = row.get(denominator)
        if top is None or not bottom or bottom <= 0:
            continue
        metrics[key] = top / bottom * scale
    return metrics


class _TopN:
    """Bounded heap keeping the best ``n`` records for one field.

    Ties are broken by arrival order: the earlier record ranks first.
    """

    def __init__(self, n: int, highest_first: bool) -> None:
        self.n = n
        self.sign = 1.0 if highest_first else -1.0
        self._heap: list[tuple[float, int, dict[str, Any]]] = []

    def push(self, value: float, index: int, record: dict[str, Any]) -> None:
        if self.n <= 0:
            return
        entry = (self.sign * value, -index, record)
        if len(self._heap) < self.n:
            heapq.heappush(self._heap, entry)
        elif entry[:2] > self._heap[0][:2]:
            heapq.heapreplace(self._heap, entry)

    def items(self) -> list[dict[str, Any]]:
        ordered = sorted(self._heap, key=lambda e: (-e[0], -e[1]))
        return [record for _, _, record in ordered]


class _KeywordCounter:
    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.count = 0
        self.keywords: list[str] = []

    def add(self, keyword: str) -> None:
        self.count += 1
        if len(self.keywords) < KEYWORD_SAMPLE_LIMIT:
            self.keywords.append(keyword)

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "count": self.count, "keywords": list(self.keywords)}


class MetricsAccumulator:
    """Fold validated records into aggregate analysis without keeping them.

    Each record is the cleaned row merged with its derived metrics.
    """

    def __init__(self, top_n: int = DEFAULT_TOP_N) -> None:
        self.top_n = top_n
        self.row_count = 0
        self._totals = {field: 0.0 for _, field in SUMMARY_TOTALS}
        self._metric_sums = {field: 0.0 for _, field in SUMMARY_AVERAGES}
        self._metric_counts = {field: 0 for _, field in SUMMARY_AVERAGES}
        self._rankings = {
            (group, label): (field, require_positive, _TopN(top_n, highest_first))
            for group, label, field, highest_first, require_positive in RANKINGS
        }
        self._trends = {
            "highCostKeywords": 0,
            "lowCTRKeywords": 0,
            "highACOSKeywords": 0,
            "zeroConversionKeywords": 0,
        }
        self._high_ctr = _KeywordCounter("high_ctr")
        self._high_roas = _KeywordCounter("high_roas")
        self._zero_conversions = _KeywordCounter("zero_conversions")
        self._high_acos = _KeywordCounter("high_acos")

    def add(self, record: dict[str, Any]) -> None:
        index = self.row_count
        self.row_count += 1
        keyword = str(record.get("keyword", ""))

        for _, field in SUMMARY_TOTALS:
            self._totals[field] += record.get(field) or 0.0

        for _, field in SUMMARY_AVERAGES:
            value = record.get(field)
            if value is not None:
                self._metric_sums[field] += value
                self._metric_counts[field] += 1

        for field, require_positive, heap in self._rankings.values():
            value = record.get(field)
            if value is None or (require_positive and value <= 0):
                continue
            heap.push(value, index, record)

        ctr = record.get("calculated_ctr")
        roas = record.get("calculated_roas")
        acos = record.get("calculated_acos")
        if (record.get("cost") or 0.0) > HIGH_COST_THRESHOLD:
            self._trends["highCostKeywords"] += 1
        if ctr is not None and ctr < LOW_CTR_THRESHOLD:
            self._trends["lowCTRKeywords"] += 1
        if acos is not None and acos > HIGH_ACOS_THRESHOLD:
            self._trends["highACOSKeywords"] += 1
            self._high_acos.add(keyword)
        if not record.get("conversions"):
            self._trends["zeroConversionKeywords"] += 1
            self._zero_conversions.add(keyword)
        if ctr is not None and ctr > HIGH_CTR_THRESHOLD:
            self._high_ctr.add(keyword)
        if roas is not None and roas > HIGH_ROAS_THRESHOLD:
            self._high_roas.add(keyword)

    def summary(self) -> dict[str, Any]:
        summary: dict[str, Any] = {"rowCount": self.row_count}
        for label, field in SUMMARY_TOTALS:
            summary[label] = self._totals[field]
        for label, field in SUMMARY_AVERAGES:
            count = self._metric_counts[field]
            summary[label] = self._metric_sums[field] / count if count else None
        return summary

    def result(self) -> dict[str, Any]:
        performers: dict[str, dict[str, list[dict[str, Any]]]] = {
            "topPerformers": {},
            "bottomPerformers": {},
        }
        for (group, label), (_, _, heap) in self._rankings.items():
            performers[group][label] = heap.items()
        return {
            "metrics": self.summary(),
            "topPerformers": performers["topPerformers"],
            "bottomPerformers": performers["bottomPerformers"],
            "trends": dict(self._trends),
            "patterns": [self._high_ctr.as_dict(), self._high_roas.as_dict()],
            "anomalies": [self._zero_conversions.as_dict(), self._high_acos.as_dict()],
        }


def enrich_record(row: dict[str, Any]) -> tuple[dict[str, Any], dict[str, float]]:
    """Return the row merged with its derived metrics, and the metrics alone."""
    metrics = calculate_metrics(row)
    return {**row, **metrics}, metrics


def analyze_records(
    records: Iterable[dict[str, Any]], top_n: int = DEFAULT_TOP_N
) -> dict[str, Any]:
    """Aggregate already-enriched records in one pass."""
    accumulator = MetricsAccumulator(top_n=top_n)
    for record in records:
        accumulator.add(record)
    return accumulator.result()
