"""Run orchestration: cost budget, coordinator and registry."""

from .budget import CostBudget
from .orchestrator import RunCoordinator, RunOrchestrator, RunPlan, roll_up_status
from .registry import RunRegistry, run_registry

__all__ = [
    "CostBudget", "RunCoordinator", "RunOrchestrator", "RunPlan",
    "RunRegistry", "roll_up_status", "run_registry",
]
