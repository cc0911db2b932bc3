"""
Run Orchestrator — turns root keywords and approved candidates into a Run of
independently scheduled Trend Probe tasks.

FLOW:
  start_run()    create Run (queued) + seed tasks, mark candidates queried
  execute_run()  queued → running, drain tasks through a bounded worker pool,
                 assess demand for completed rising tasks, expand rising
                 queries breadth-first, roll the status up

Each run gets its own RunCoordinator. Only that coordinator writes the run's
status, cost and tasks; the store is the source of truth for everything else.

ROLL-UP (once the pool drains):
  total == 0                 → completed
  error == total             → failed
  error > 0 or leftovers > 0 → completed_with_errors
  otherwise                  → completed
Leftovers are tasks still queued because the budget ran out. They count
toward total but never toward error, so budget exhaustion alone is never
`failed`.

A store failure stops dispatch. Tasks still running are errored and the run
is marked failed (best effort, the store may still be down) before the
failure is raised to the caller.

A rising task whose demand assessment comes back non_tool is kept, but it
is not expanded and raises no alert.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Set

from scout.candidates import CandidateManager, normalize_keyword
from scout.config import TIMEFRAME_ALIASES, Settings
from scout.database import Database, new_id, utcnow
from scout.errors import (
    BudgetExhausted, ConfigurationError, InvalidTransition, NotFoundError,
    ProbeTimeout, StoreError, UpstreamError,
)
from scout.schemas import (
    Candidate, ClassifierLabel, Run, RunDetail, RunOptions, RunStatus, Task,
    TaskCounts, TaskSource, TaskStatus,
)
from scout.tools.trend_probe import ProbeResult, build_request
from scout.trends import TrendAggregator, is_tool_demand

from .budget import CostBudget
from .registry import RunRegistry, run_registry

logger = logging.getLogger(__name__)

CANCELLED_REASON = "cancelled"


def normalize_timeframe(value: Optional[str], default: str = "past_7_days") -> str:
    value = (value or "").strip()
    if not value:
        return default
    return TIMEFRAME_ALIASES.get(value, value)


def roll_up_status(counts: TaskCounts, finished: bool) -> RunStatus:
    if not finished:
        return RunStatus.RUNNING_WITH_ERRORS if counts.error else RunStatus.RUNNING
    if counts.total == 0:
        return RunStatus.COMPLETED
    if counts.error == counts.total:
        return RunStatus.FAILED
    if counts.error or counts.queued:
        return RunStatus.COMPLETED_WITH_ERRORS
    return RunStatus.COMPLETED


@dataclass(frozen=True)
class RunPlan:
    """Resolved run options. Stored in run metadata."""
    max_candidates: int
    cost_budget: float
    concurrency: int
    locale: str
    timeframe: str
    estimated_task_cost: float
    max_discovery_depth: int

    @classmethod
    def resolve(cls, options: RunOptions, settings: Settings) -> "RunPlan":
        def pick(value, default):
            return default if value is None else value

        return cls(
            max_candidates=pick(options.max_candidates, settings.run_max_candidates),
            cost_budget=pick(options.cost_budget, settings.run_cost_budget),
            concurrency=max(1, pick(options.concurrency, settings.run_concurrency)),
            locale=(options.locale or settings.default_locale).strip().lower(),
            timeframe=normalize_timeframe(options.timeframe, settings.default_timeframe),
            estimated_task_cost=pick(options.estimated_task_cost, settings.run_estimated_task_cost),
            max_discovery_depth=settings.max_discovery_depth,
        )

    @classmethod
    def from_metadata(cls, metadata: Dict, settings: Settings) -> "RunPlan":
        options = RunOptions(**{k: metadata[k] for k in RunOptions.model_fields if k in metadata})
        return cls.resolve(options, settings)

    def as_metadata(self) -> Dict:
        return {k: getattr(self, k) for k in self.__dataclass_fields__}


class RunCoordinator:
    """Executes one run: worker pool, budget, cancellation and expansion."""

    def __init__(
        self,
        run_id: str,
        plan: RunPlan,
        db: Database,
        settings: Settings,
        probe,
        aggregator: Optional[TrendAggregator] = None,
        classifier=None,
    ):
        self.run_id = run_id
        self.plan = plan
        self.db = db
        self.settings = settings
        self.probe = probe
        self.aggregator = aggregator
        self.classifier = classifier
        self.budget = CostBudget(plan.cost_budget, plan.estimated_task_cost)
        self.cancelled = False
        self.errors = 0
        self.fatal: Optional[BaseException] = None
        self._keywords: Set[str] = set()

    def cancel(self):
        self.cancelled = True
        logger.info(f"Run {self.run_id}: cancellation requested")

    async def execute(self) -> Run:
        self.db.advance_run_status(self.run_id, RunStatus.RUNNING)
        queued = self.db.list_tasks(self.run_id, statuses=[TaskStatus.QUEUED])
        self._keywords = {normalize_keyword(t.keyword) for t in self.db.list_tasks(self.run_id)}
        logger.info(
            f"Run {self.run_id}: {len(queued)} tasks, concurrency={self.plan.concurrency}, "
            f"budget={self.plan.cost_budget}"
        )

        queue: asyncio.Queue = asyncio.Queue()
        for task in queued:
            queue.put_nowait(task)

        workers = [asyncio.create_task(self._worker(queue)) for _ in range(self.plan.concurrency)]
        try:
            await queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        if self.fatal is not None:
            self._abort()
            raise self.fatal
        return self._finalize()

    async def _worker(self, queue: asyncio.Queue):
        while True:
            task = await queue.get()
            try:
                if self.fatal is None:
                    await self._process(task, queue)
            except StoreError as e:
                if self.fatal is None:
                    self.fatal = e
                logger.error(f"Run {self.run_id}: store failure, stopping dispatch: {e}")
            except Exception as e:
                if self.fatal is None:
                    self.fatal = e
                logger.exception(f"Run {self.run_id}: unexpected failure on '{task.keyword}'")
            finally:
                queue.task_done()

    async def _process(self, task: Task, queue: asyncio.Queue):
        if self.cancelled:
            self._cancel_task(task)
            return
        try:
            reservation = await self.budget.acquire()
        except BudgetExhausted:
            # Left queued on purpose
            return

        billed = 0.0
        try:
            if self.cancelled:
                self._cancel_task(task)
                return
            if not self.db.transition_task(task.task_id, [TaskStatus.QUEUED], TaskStatus.RUNNING):
                return
            result = await self._probe(task)
            if result is None:
                return
            billed = result.cost
            completed = self._complete_task(task, result)
        finally:
            # Waiting workers block on this until the run is calibrated
            await self.budget.settle(reservation, billed)

        if completed is None:
            return
        completed = await self._assess_demand(completed)
        if self.aggregator is not None:
            self.aggregator.record_task_result(completed)
        if is_tool_demand(completed.metadata.get("demand_assessment")):
            self._expand(completed, result, queue)

    async def _probe(self, task: Task) -> Optional[ProbeResult]:
        """Call the probe once. Failures are recorded on the task, never raised."""
        try:
            result = await asyncio.wait_for(
                self.probe.probe(task.keyword, task.locale, task.timeframe),
                timeout=self.settings.probe_timeout,
            )
            if not isinstance(result, ProbeResult):
                raise UpstreamError(f"malformed probe result: {type(result).__name__}")
            return result
        except asyncio.TimeoutError:
            self._fail_task(task, ProbeTimeout(f"probe timeout after {self.settings.probe_timeout:.0f}s"))
        except Exception as e:
            self._fail_task(task, e)
        return None

    async def _assess_demand(self, task: Task) -> Task:
        """Label a completed rising task as tool demand or not. Failures are stored as unclear."""
        if self.classifier is None or task.source != TaskSource.RISING.value:
            return task
        timeout = self.settings.classifier_timeout
        try:
            verdict = await asyncio.wait_for(
                self.classifier.assess_demand(
                    task.keyword,
                    root_keyword=task.metadata.get("root_keyword"),
                    parent_keyword=task.metadata.get("parent_keyword"),
                    locale=task.locale,
                    timeframe=task.timeframe,
                ),
                timeout=timeout,
            )
            assessment = verdict.as_metadata()
        except asyncio.TimeoutError:
            assessment = _unclear_assessment(f"llm_error: classifier timeout after {timeout:.0f}s")
        except Exception as e:
            logger.warning(f"Run {self.run_id}: demand assessment failed for '{task.keyword}': {e}")
            assessment = _unclear_assessment(f"llm_error: {e}")

        assessment["assessed_at"] = utcnow().isoformat()
        self.db.update_task_metadata(task.task_id, {"demand_assessment": assessment})
        if not is_tool_demand(assessment):
            logger.info(f"Run {self.run_id}: '{task.keyword}' is not tool demand, not expanding")
        return task.model_copy(update={"metadata": {**task.metadata, "demand_assessment": assessment}})

    # ── Task transitions ──────────────────────────────────────────────

    def _completed_at(self, task: Task) -> datetime:
        return max(utcnow(), task.posted_at)

    def _complete_task(self, task: Task, result: ProbeResult) -> Optional[Task]:
        completed_at = self._completed_at(task)
        cost = float(result.cost or 0.0)
        if not self.db.transition_task(
            task.task_id, [TaskStatus.RUNNING], TaskStatus.COMPLETED,
            result=result.model_dump(mode="json"),
            cost=cost,
            completed_at=completed_at,
        ):
            return None
        if cost:
            self.db.add_run_cost(self.run_id, cost)
        return task.model_copy(update={
            "status": TaskStatus.COMPLETED.value,
            "result": result.model_dump(mode="json"),
            "cost": cost,
            "completed_at": completed_at,
        })

    def _fail_task(self, task: Task, error: BaseException):
        message = str(error) or type(error).__name__
        if not isinstance(error, UpstreamError):
            message = f"{type(error).__name__}: {message}"
        logger.warning(f"Run {self.run_id}: task '{task.keyword}' failed: {message}")
        if self.db.transition_task(
            task.task_id, [TaskStatus.RUNNING], TaskStatus.ERROR,
            error_message=message[:1000],
            completed_at=self._completed_at(task),
        ):
            self._note_error()

    def _cancel_task(self, task: Task):
        if self.db.transition_task(
            task.task_id, [TaskStatus.QUEUED], TaskStatus.ERROR,
            error_message=CANCELLED_REASON,
            completed_at=self._completed_at(task),
        ):
            self._note_error()

    def _note_error(self):
        self.errors += 1
        if self.errors == 1:
            self.db.advance_run_status(self.run_id, RunStatus.RUNNING_WITH_ERRORS)

    # ── Rising expansion ──────────────────────────────────────────────

    def _expand(self, task: Task, result: ProbeResult, queue: asyncio.Queue):
        """Breadth-first children from rising queries, bounded by depth."""
        if task.source != TaskSource.RISING.value:
            return
        depth = task.discovery_depth
        if depth >= self.plan.max_discovery_depth:
            return
        if self.cancelled or self.budget.exhausted:
            return

        parent = normalize_keyword(task.keyword)
        root = normalize_keyword(task.metadata.get("root_keyword"))
        children = 0
        for entry in result.rising:
            if children >= self.settings.rising_max_children:
                break
            if entry.value is None or entry.value < self.settings.rising_queue_threshold:
                continue
            keyword = normalize_keyword(entry.query)
            if not keyword or keyword in (parent, root) or keyword in self._keywords:
                continue
            self._keywords.add(keyword)
            child = new_task(
                self.run_id, keyword, task.locale, task.timeframe,
                metadata={
                    "source": TaskSource.RISING.value,
                    "root_keyword": task.metadata.get("root_keyword"),
                    "root_label": task.metadata.get("root_label"),
                    "discovery_depth": depth + 1,
                    "parent_task_id": task.task_id,
                    "parent_keyword": task.keyword,
                    "rising_value": entry.value,
                },
            )
            self.db.create_task(child)
            queue.put_nowait(child)
            children += 1
        if children:
            logger.info(f"Run {self.run_id}: '{task.keyword}' expanded into {children} rising tasks (depth {depth + 1})")

    # ── Roll-up ───────────────────────────────────────────────────────

    def _abort(self):
        try:
            now = utcnow()
            for task in self.db.list_tasks(self.run_id, statuses=[TaskStatus.RUNNING]):
                self.db.transition_task(
                    task.task_id, [TaskStatus.RUNNING], TaskStatus.ERROR,
                    error_message=f"aborted: {self.fatal}"[:1000],
                    completed_at=max(now, task.posted_at),
                )
            self.db.advance_run_status(self.run_id, RunStatus.FAILED, completed_at=now)
        except StoreError as e:
            logger.error(f"Run {self.run_id}: could not mark the run failed: {e}")
        else:
            logger.error(f"Run {self.run_id} failed: {self.fatal}")

    def _finalize(self) -> Run:
        counts = self.db.count_tasks(self.run_id)
        status = roll_up_status(counts, finished=True)
        self.db.update_run_metadata(self.run_id, {
            "budget_exhausted": self.budget.exhausted,
            "leftover_tasks": counts.queued,
            "tasks_dispatched": self.budget.dispatched,
            "cancelled": self.cancelled,
        })
        self.db.advance_run_status(self.run_id, status, completed_at=utcnow())
        run = self.db.get_run(self.run_id)
        logger.info(
            f"Run {self.run_id} {run.status}: {counts.completed}/{counts.total} completed, "
            f"{counts.error} errors, {counts.queued} left queued, cost {run.cost_total:.4f}"
        )
        return run


def _unclear_assessment(reason: str) -> Dict:
    return {"label": ClassifierLabel.UNCLEAR.value, "score": None, "reason": reason, "summary": None}


def new_task(run_id: str, keyword: str, locale: str, timeframe: str, metadata: Dict) -> Task:
    return Task(
        task_id=new_id(),
        run_id=run_id,
        status=TaskStatus.QUEUED,
        keyword=keyword,
        locale=locale,
        timeframe=timeframe,
        posted_at=utcnow(),
        metadata=metadata,
        request=build_request(keyword, locale, timeframe),
    )


class RunOrchestrator:
    """Creates, executes, cancels and reads runs."""

    def __init__(
        self,
        db: Database,
        settings: Settings,
        candidates: CandidateManager,
        probe=None,
        aggregator: Optional[TrendAggregator] = None,
        registry: Optional[RunRegistry] = None,
    ):
        self.db = db
        self.settings = settings
        self.candidates = candidates
        self.probe = probe
        self.aggregator = aggregator
        self.registry = registry if registry is not None else run_registry

    # ── Create ────────────────────────────────────────────────────────

    def start_run(self, options: Optional[RunOptions] = None, now: Optional[datetime] = None) -> Run:
        """Create the run and its seed tasks. Returns the queued run immediately."""
        if self.probe is None:
            raise ConfigurationError("Trend probe is not configured (DATAFORSEO_LOGIN / DATAFORSEO_PASSWORD)")
        options = options or RunOptions()
        plan = RunPlan.resolve(options, self.settings)
        now = now or utcnow()
        run_id = new_id()

        roots = self._root_seeds(options, plan)
        selected = self.candidates.select_approved(plan.max_candidates, exclude_queried=True, now=now)

        run = Run(
            id=run_id,
            triggered_at=now,
            status=RunStatus.QUEUED,
            trigger_source=options.trigger_source or "api",
            root_keywords=[keyword for keyword, _, _ in roots],
            metadata=plan.as_metadata(),
        )
        self.db.create_run(run)

        seen: Set[str] = set()
        for keyword, label, locale in roots:
            seen.add(normalize_keyword(keyword))
            self.db.create_task(new_task(run_id, keyword, locale, plan.timeframe, metadata={
                "source": TaskSource.ROOT.value,
                "root_keyword": keyword,
                "root_label": label,
                "discovery_depth": 0,
            }))

        queried: List[str] = []
        for candidate in selected:
            if candidate.term_normalized in seen:
                continue
            seen.add(candidate.term_normalized)
            self.db.create_task(new_task(
                run_id, candidate.term, plan.locale, plan.timeframe,
                metadata=self._candidate_metadata(candidate),
            ))
            queried.append(candidate.id)
        self.candidates.mark_queried(queried, now=now)
        self.db.update_run_metadata(run_id, {"candidate_ids": queried})

        self.registry.register(RunCoordinator(
            run_id, plan, self.db, self.settings, self.probe, self.aggregator,
            classifier=self.candidates.classifier,
        ))
        logger.info(f"Run {run_id} queued: {len(roots)} roots, {len(queried)} candidates")
        return self.db.get_run(run_id)

    def _root_seeds(self, options: RunOptions, plan: RunPlan):
        seeds = []
        seen: Set[str] = set()
        if options.root_keywords:
            for keyword in options.root_keywords:
                normalized = normalize_keyword(keyword)
                if normalized and normalized not in seen:
                    seen.add(normalized)
                    seeds.append((keyword.strip(), None, plan.locale))
            return seeds
        for root in self.db.list_roots(active_only=True):
            normalized = normalize_keyword(root.keyword)
            if normalized and normalized not in seen:
                seen.add(normalized)
                locale = plan.locale if options.locale else (root.locale or plan.locale)
                seeds.append((root.keyword.strip(), root.label, locale))
        return seeds

    @staticmethod
    def _candidate_metadata(candidate: Candidate) -> Dict:
        return {
            "source": TaskSource.RISING.value,
            "root_keyword": candidate.term,
            "candidate_id": candidate.id,
            "candidate_source": candidate.source,
            "candidate_llm_label": candidate.llm_label,
            "candidate_llm_score": candidate.llm_score,
            "candidate_captured_at": candidate.captured_at.isoformat(),
            "news_id": candidate.metadata.get("news_id"),
            "discovery_depth": 0,
        }

    # ── Execute ───────────────────────────────────────────────────────

    async def execute_run(self, run_id: str) -> Run:
        coordinator = self.registry.get(run_id)
        if coordinator is None:
            run = self.db.get_run(run_id)
            if run is None:
                raise NotFoundError(f"Run {run_id} not found")
            if RunStatus(run.status).is_terminal:
                return run
            coordinator = RunCoordinator(
                run_id, RunPlan.from_metadata(run.metadata, self.settings),
                self.db, self.settings, self.probe, self.aggregator,
                classifier=self.candidates.classifier,
            )
            self.registry.register(coordinator)
        try:
            return await coordinator.execute()
        finally:
            self.registry.unregister(run_id)

    async def run(self, options: Optional[RunOptions] = None) -> RunDetail:
        """Start a run and wait for it to finish."""
        run = self.start_run(options)
        await self.execute_run(run.id)
        return self.get_run(run.id)

    # ── Cancel ────────────────────────────────────────────────────────

    def cancel_run(self, run_id: str) -> Run:
        run = self.db.get_run(run_id)
        if run is None:
            raise NotFoundError(f"Run {run_id} not found")
        if RunStatus(run.status).is_terminal:
            raise InvalidTransition(f"Run {run_id} already finished ({run.status})")

        coordinator = self.registry.get(run_id)
        if coordinator is not None:
            coordinator.cancel()
            return self.db.get_run(run_id)

        # Orphaned run (e.g. after a restart): nothing is in flight
        now = utcnow()
        for task in self.db.list_tasks(run_id, statuses=[TaskStatus.QUEUED, TaskStatus.RUNNING]):
            self.db.transition_task(
                task.task_id, [TaskStatus.QUEUED, TaskStatus.RUNNING], TaskStatus.ERROR,
                error_message=CANCELLED_REASON, completed_at=max(now, task.posted_at),
            )
        counts = self.db.count_tasks(run_id)
        self.db.update_run_metadata(run_id, {"cancelled": True})
        self.db.advance_run_status(run_id, roll_up_status(counts, finished=True), completed_at=now)
        return self.db.get_run(run_id)

    # ── Read ──────────────────────────────────────────────────────────

    def get_run(self, run_id: str) -> RunDetail:
        run = self.db.get_run(run_id)
        if run is None:
            raise NotFoundError(f"Run {run_id} not found")
        return RunDetail(run=run, tasks=self.db.list_tasks(run_id))

    def list_runs(self, limit: int = 20) -> List[Run]:
        return self.db.list_runs(limit=limit)
