"""Analysis result and enrichment payloads."""

from typing import Any

from pydantic import BaseModel, Field


class AnalysisSummary(BaseModel):
    totalRows: int
    processedRows: int
    discardedRows: int
    discardReasons: dict[str, int] = Field(default_factory=dict)
    successRate: float = Field(..., description="Kept rows as a percentage of all rows")
    metrics: dict[str, Any] = Field(default_factory=dict)


class OptimizationTaskOut(BaseModel):
    id: int | None = None
    type: str
    priority: str
    description: str
    estimatedImpact: str
    difficulty: str
    actionItems: list[str] = Field(default_factory=list)
    status: str


class AnalysisBody(BaseModel):
    summary: AnalysisSummary
    performance: dict[str, Any]
    trends: dict[str, int]
    patterns: list[dict[str, Any]] = Field(default_factory=list)
    anomalies: list[dict[str, Any]] = Field(default_factory=list)
    insights: list[Any] = Field(default_factory=list)
    optimizationTasks: list[OptimizationTaskOut] = Field(default_factory=list)
    aiGenerated: bool = False
    error: str | None = None


class AnalysisResponse(BaseModel):
    jobId: str
    filename: str
    status: str
    completedAt: str | None = None
    analysis: AnalysisBody


class EnrichmentResponse(BaseModel):
    jobId: str
    insights: list[Any]
    tasks: list[dict[str, Any]]
    totalTasks: int
    aiGenerated: bool
    error: str | None = None
