"""Statistical analysis stage."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from adinsight.services.metrics_engine import MetricsAccumulator

logger = logging.getLogger(__name__)

ANALYZER_TOP_N = 5


class DataAnalyzer:
    """Summarize enriched records into metrics, patterns and rankings."""

    def __init__(self, top_n: int = ANALYZER_TOP_N) -> None:
        self.top_n = top_n

    def execute(self, data: Iterable[dict[str, Any]]) -> dict[str, Any]:
        logger.info("DataAnalyzer analyzing records")
        accumulator = MetricsAccumulator(top_n=self.top_n)
        for record in data:
            accumulator.add(record)
        return accumulator.result()
