"""Natural-language insight generation stage."""

from __future__ import annotations

import logging
from typing import Any

from adinsight.services.enrichment.base import GenerationCapability, InsightResult

logger = logging.getLogger(__name__)

INSIGHT_FAILURE_MESSAGE = "Failed to generate insights via LLM"


def _as_insight_list(output: Any) -> list[Any]:
    if isinstance(output, list):
        return output
    if isinstance(output, dict) and isinstance(output.get("insights"), list):
        return output["insights"]
    return [output]


class InsightGenerator:
    def __init__(self, generator: GenerationCapability) -> None:
        self.generator = generator

    def execute(self, data: dict[str, Any]) -> InsightResult:
        logger.info("InsightGenerator generating insights")
        payload = {
            "metrics": data.get("metrics"),
            "patterns": data.get("patterns"),
            "anomalies": data.get("anomalies"),
        }
        try:
            output = self.generator.generate("analysis", payload)
        except Exception as e:
            logger.error(f"Insight generation failed: {type(e).__name__}: {e}")
            return InsightResult(
                insights=[INSIGHT_FAILURE_MESSAGE], analysis=data, ai_generated=False
            )
        return InsightResult(
            insights=_as_insight_list(output), analysis=data, ai_generated=True
        )
