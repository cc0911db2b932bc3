"""
Run and task models.

A Run exclusively owns its Tasks. Task counts are derived from task rows, so
they always agree with the tasks that exist.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import CamelModel, RunStatus, TaskStatus


class TaskCounts(CamelModel):
    total: int = 0
    completed: int = 0
    queued: int = 0
    error: int = 0
    running: int = 0


class Task(CamelModel):
    """One keyword/locale/timeframe research unit inside a run."""
    task_id: str
    run_id: str
    status: TaskStatus = TaskStatus.QUEUED
    keyword: str
    locale: str
    timeframe: str
    posted_at: datetime
    completed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    request: Optional[Dict[str, Any]] = None
    result: Optional[Dict[str, Any]] = None
    cost: Optional[float] = None
    error_message: Optional[str] = None

    @property
    def discovery_depth(self) -> int:
        return int(self.metadata.get("discovery_depth", 0) or 0)

    @property
    def source(self) -> str:
        return self.metadata.get("source", "root")


class Run(CamelModel):
    id: str
    triggered_at: datetime
    status: RunStatus = RunStatus.QUEUED
    trigger_source: Optional[str] = None
    root_keywords: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    task_counts: TaskCounts = Field(default_factory=TaskCounts)
    cost_total: float = 0.0
    completed_at: Optional[datetime] = None


class RunDetail(CamelModel):
    run: Run
    tasks: List[Task] = Field(default_factory=list)


class RunOptions(CamelModel):
    """Inputs for starting a run. Unset values fall back to Settings."""
    root_keywords: List[str] = Field(default_factory=list)
    max_candidates: Optional[int] = Field(default=None, ge=0)
    cost_budget: Optional[float] = Field(default=None, ge=0)
    concurrency: Optional[int] = Field(default=None, ge=1)
    locale: Optional[str] = None
    timeframe: Optional[str] = None
    estimated_task_cost: Optional[float] = Field(default=None, ge=0)
    trigger_source: Optional[str] = None
