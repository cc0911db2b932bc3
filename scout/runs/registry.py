"""Run registry -- tracks live run coordinators in-memory.

The store holds all run state; the registry only maps a run id to the
coordinator currently executing it so operators can cancel it. Runs are
registered when created and dropped once they reach a terminal status.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List


class RunRegistry:
    """Singleton that tracks live coordinators across API requests."""

    def __init__(self):
        self._runs: Dict[str, Any] = {}
        self._registered_at: Dict[str, datetime] = {}

    def register(self, coordinator) -> None:
        self._runs[coordinator.run_id] = coordinator
        self._registered_at[coordinator.run_id] = datetime.now(timezone.utc)

    def unregister(self, run_id: str) -> None:
        self._runs.pop(run_id, None)
        self._registered_at.pop(run_id, None)

    def get(self, run_id: str):
        return self._runs.get(run_id)

    def list_active(self) -> List[str]:
        return sorted(self._runs, key=lambda rid: self._registered_at[rid], reverse=True)

    @property
    def is_running(self) -> bool:
        return bool(self._runs)


# Module-level singleton
run_registry = RunRegistry()
