"""Stage interface and result containers for the enrichment pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PipelineStage(Protocol):
    """One step of the pipeline; each stage consumes the previous output."""

    def execute(self, data: Any) -> Any: ...


@runtime_checkable
class GenerationCapability(Protocol):
    """External text generator returning parsed structured output.

    Implementations raise ``GenerationError`` on timeout, provider failure
    or malformed output.
    """

    def generate(self, prompt_name: str, payload: dict[str, Any]) -> Any: ...


@dataclass
class InsightResult:
    insights: list[Any]
    analysis: dict[str, Any]
    ai_generated: bool


@dataclass
class TaskResult:
    tasks: list[dict[str, Any]]
    ai_generated: bool


@dataclass
class PipelineOutput:
    analysis: dict[str, Any] | None = None
    insights: list[Any] = field(default_factory=list)
    tasks: list[dict[str, Any]] = field(default_factory=list)
    ai_generated: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "analysis": self.analysis,
            "insights": list(self.insights),
            "tasks": list(self.tasks),
            "aiGenerated": self.ai_generated,
            "error": self.error,
        }
