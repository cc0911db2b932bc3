"""
Schemas package — all data models for AI Trends Scout.

Models are organized by domain in submodules:
  - base.py: Status enums and the camelCase API base model
  - signals.py: NewsItem, Candidate, RootKeyword and harvest/candidate stats
  - runs.py: Run, Task, TaskCounts, RunDetail, RunOptions
  - trends.py: KeywordSnapshot, Alert, Hotlist, Overview
"""

from scout.schemas.base import (
    AlertPriority, CamelModel, CandidateStatus, ClassifierLabel,
    RunStatus, TaskSource, TaskStatus, TERMINAL_RUN_STATUSES,
)
from scout.schemas.signals import (
    Candidate, CandidateEvaluationStats, HarvestStats, NewsItem,
    RawCandidateEntry, RecordCandidateStats, RootKeyword,
)
from scout.schemas.runs import Run, RunDetail, RunOptions, Task, TaskCounts
from scout.schemas.trends import (
    Alert, Hotlist, HotlistEntry, KeywordSnapshot, Metric, Overview,
)

__all__ = [
    "AlertPriority", "CamelModel", "CandidateStatus", "ClassifierLabel",
    "RunStatus", "TaskSource", "TaskStatus", "TERMINAL_RUN_STATUSES",
    "Candidate", "CandidateEvaluationStats", "HarvestStats", "NewsItem",
    "RawCandidateEntry", "RecordCandidateStats", "RootKeyword",
    "Run", "RunDetail", "RunOptions", "Task", "TaskCounts",
    "Alert", "Hotlist", "HotlistEntry", "KeywordSnapshot", "Metric", "Overview",
]
