"""Three-stage enrichment: analysis, insight generation, task creation."""
from adinsight.services.enrichment.analyzer import DataAnalyzer
from adinsight.services.enrichment.base import (
    GenerationCapability,
    InsightResult,
    PipelineOutput,
    PipelineStage,
    TaskResult,
)
from adinsight.services.enrichment.insights import InsightGenerator
from adinsight.services.enrichment.pipeline import EnrichmentPipeline
from adinsight.services.enrichment.tasks import TaskCreator

__all__ = [
    "DataAnalyzer",
    "EnrichmentPipeline",
    "GenerationCapability",
    "InsightGenerator",
    "InsightResult",
    "PipelineOutput",
    "PipelineStage",
    "TaskCreator",
    "TaskResult",
]
