"""Optimization task creation stage."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from adinsight.services.enrichment.base import (
    GenerationCapability,
    InsightResult,
    TaskResult,
)

logger = logging.getLogger(__name__)

TASK_FAILURE_MESSAGE = "Failed to generate tasks via LLM"


class OptimizationTaskItem(BaseModel):
    """Normalized task shape; missing fields take their defaults."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = "general"
    priority: str = "medium"
    description: str = Field(
        default="No description provided",
        validation_alias=AliasChoices("description", "recommendation"),
    )
    impact: str = Field(
        default="medium", validation_alias=AliasChoices("impact", "estimated_impact")
    )
    difficulty: str = "medium"
    action_items: list[str] = Field(default_factory=list)

    @field_validator("type", "priority", "impact", "difficulty", mode="before")
    @classmethod
    def _lower_label(cls, v: Any) -> str:
        return str(v).strip().lower()

    @field_validator("description", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return str(v)

    @field_validator("action_items", mode="before")
    @classmethod
    def _items(cls, v: Any) -> Any:
        if v is None:
            return []
        if not isinstance(v, (list, tuple)):
            return [str(v)]
        return [str(item) for item in v]

    @classmethod
    def from_raw(cls, raw: Any) -> "OptimizationTaskItem":
        if not isinstance(raw, dict):
            return cls(description=str(raw))
        # Drop explicit nulls so defaults apply
        return cls.model_validate({k: v for k, v in raw.items() if v is not None and v != ""})


def placeholder_task(description: str = TASK_FAILURE_MESSAGE) -> dict[str, Any]:
    return OptimizationTaskItem(description=description, impact="low").model_dump()


class TaskCreator:
    def __init__(self, generator: GenerationCapability) -> None:
        self.generator = generator

    def execute(self, data: InsightResult) -> TaskResult:
        logger.info("TaskCreator creating optimization tasks")
        try:
            output = self.generator.generate("optimization", {"insights": data.insights})
        except Exception as e:
            logger.error(f"Task generation failed: {type(e).__name__}: {e}")
            return TaskResult(tasks=[placeholder_task()], ai_generated=False)

        if not isinstance(output, list):
            logger.warning(f"Task generation returned {type(output).__name__}, expected a list")
            return TaskResult(tasks=[placeholder_task()], ai_generated=False)

        tasks = [OptimizationTaskItem.from_raw(item).model_dump() for item in output]
        return TaskResult(tasks=tasks, ai_generated=True)
