"""Fixed-order enrichment pipeline: analyze, then generate insights, then tasks."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from adinsight.services.enrichment.analyzer import DataAnalyzer
from adinsight.services.enrichment.base import GenerationCapability, PipelineOutput
from adinsight.services.enrichment.insights import InsightGenerator
from adinsight.services.enrichment.tasks import TaskCreator

logger = logging.getLogger(__name__)

GeneratorFactory = Callable[[], GenerationCapability]


class EnrichmentPipeline:
    """Compose the three stages around a lazily built generation capability.

    A capability that cannot be built yields an output carrying only the
    error. Analyzer failures propagate to the caller; generation failures
    degrade inside their stage.
    """

    def __init__(self, generator_factory: GeneratorFactory) -> None:
        self.generator_factory = generator_factory

    def run(self, records: Iterable[dict[str, Any]]) -> PipelineOutput:
        try:
            generator = self.generator_factory()
        except Exception as e:
            logger.error(f"Generation capability unavailable: {e}")
            return PipelineOutput(error=str(e), ai_generated=False)

        try:
            analysis = DataAnalyzer().execute(records)
            insight_result = InsightGenerator(generator).execute(analysis)
            task_result = TaskCreator(generator).execute(insight_result)
        finally:
            close = getattr(generator, "close", None)
            if close is not None:
                close()

        ai_generated = insight_result.ai_generated and task_result.ai_generated
        logger.info(f"Enrichment pipeline finished (aiGenerated={ai_generated})")
        return PipelineOutput(
            analysis=analysis,
            insights=insight_result.insights,
            tasks=task_result.tasks,
            ai_generated=ai_generated,
        )
