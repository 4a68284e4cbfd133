"""Database models package."""
from adinsight.db.models.analysis_job import AnalysisJob, JobStatus
from adinsight.db.models.analysis_result import AnalysisResult
from adinsight.db.models.enrichment_result import EnrichmentResult
from adinsight.db.models.historical_snapshot import HistoricalSnapshot
from adinsight.db.models.optimization_task import OptimizationTask
from adinsight.db.models.processed_record import ProcessedRecord

__all__ = [
    "AnalysisJob",
    "JobStatus",
    "AnalysisResult",
    "EnrichmentResult",
    "HistoricalSnapshot",
    "OptimizationTask",
    "ProcessedRecord",
]
