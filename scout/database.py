"""
SQLite database — the signal store and single source of truth.

Tables:
  - news_items: Harvested articles, unique by canonical URL
  - candidates: Keyword candidates, unique by (term_normalized, source)
  - root_keywords: Curated seed keywords
  - runs / tasks: Research runs and their per-keyword tasks
  - keyword_snapshots: Append-only trend scores per (keyword, locale)
  - alerts: Spike alerts, unique per (keyword, locale, bucket)

Status changes go through conditional UPDATEs (``WHERE status IN (...)``) so a
transition only lands when the row is still in an expected state.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, Index, Integer, String, Text,
    UniqueConstraint, create_engine, func,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import get_settings
from .errors import StoreError
from .schemas import (
    Alert, Candidate, CandidateStatus, KeywordSnapshot, NewsItem, RootKeyword,
    Run, RunStatus, Task, TaskCounts, TaskStatus,
)

logger = logging.getLogger(__name__)

Base = declarative_base()


def new_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite keeps naive datetimes; store everything as naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def _values(items: Iterable[Any]) -> List[str]:
    return [item.value if isinstance(item, Enum) else item for item in items]


# ── Models ───────────────────────────────────────────────────────────────────

class NewsItemModel(Base):
    __tablename__ = "news_items"

    id = Column(String(32), primary_key=True)
    url_key = Column(String(1000), nullable=False, unique=True)
    url = Column(String(2000), nullable=False)
    title = Column(String(500), nullable=False)
    source = Column(String(300))
    summary = Column(Text)
    published_at = Column(DateTime)
    keywords = Column(JSON, default=list)
    meta = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class CandidateModel(Base):
    __tablename__ = "candidates"
    __table_args__ = (UniqueConstraint("term_normalized", "source", name="uq_candidate_term_source"),)

    id = Column(String(32), primary_key=True)
    term = Column(String(120), nullable=False)
    term_normalized = Column(String(120), nullable=False, index=True)
    source = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    llm_label = Column(String(30))
    llm_score = Column(Float)
    llm_reason = Column(Text)
    llm_attempts = Column(Integer, default=0)
    llm_last_attempt = Column(DateTime)
    captured_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    queried_at = Column(DateTime)
    rejection_reason = Column(Text)
    raw_title = Column(String(500))
    raw_summary = Column(Text)
    url = Column(String(2000))
    meta = Column("metadata", JSON, default=dict)
    updated_at = Column(DateTime)


class RootKeywordModel(Base):
    __tablename__ = "root_keywords"
    __table_args__ = (UniqueConstraint("keyword", "locale", name="uq_root_keyword_locale"),)

    id = Column(String(32), primary_key=True)
    label = Column(String(200), nullable=False)
    keyword = Column(String(200), nullable=False)
    locale = Column(String(30), default="global")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime)


class RunModel(Base):
    __tablename__ = "runs"

    id = Column(String(32), primary_key=True)
    triggered_at = Column(DateTime, nullable=False)
    status = Column(String(30), nullable=False, default="queued")
    trigger_source = Column(String(50))
    root_keywords = Column(JSON, default=list)
    meta = Column("metadata", JSON, default=dict)
    cost_total = Column(Float, default=0.0)
    completed_at = Column(DateTime)


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(String(32), primary_key=True)
    run_id = Column(String(32), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="queued")
    keyword = Column(String(200), nullable=False)
    locale = Column(String(30), nullable=False)
    timeframe = Column(String(30), nullable=False)
    posted_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)
    meta = Column("metadata", JSON, default=dict)
    request = Column(JSON)
    result = Column(JSON)
    cost = Column(Float)
    error_message = Column(Text)


class KeywordSnapshotModel(Base):
    __tablename__ = "keyword_snapshots"
    __table_args__ = (Index("ix_snapshot_keyword_locale", "keyword", "locale", "collected_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    keyword = Column(String(200), nullable=False)
    locale = Column(String(30), nullable=False)
    timeframe = Column(String(30), nullable=False, index=True)
    collected_at = Column(DateTime, nullable=False)
    trend_score = Column(Float, nullable=False)
    run_id = Column(String(32))
    task_id = Column(String(32))


class AlertModel(Base):
    __tablename__ = "alerts"
    __table_args__ = (UniqueConstraint("keyword", "locale", "bucket", name="uq_alert_bucket"),)

    id = Column(String(32), primary_key=True)
    keyword = Column(String(200), nullable=False)
    locale = Column(String(30), nullable=False)
    priority = Column(String(10), nullable=False)
    spike_score = Column(Float, nullable=False)
    triggered_at = Column(DateTime, nullable=False)
    bucket = Column(Integer, nullable=False)


# ── Row → schema converters ──────────────────────────────────────────────────

def _news(row: NewsItemModel) -> NewsItem:
    return NewsItem(
        id=row.id,
        title=row.title,
        url=row.url,
        url_key=row.url_key,
        source=row.source,
        published_at=_from_db(row.published_at),
        summary=row.summary,
        keywords=list(row.keywords or []),
        metadata=dict(row.meta or {}),
        created_at=_from_db(row.created_at),
    )


def _candidate(row: CandidateModel) -> Candidate:
    return Candidate(
        id=row.id,
        term=row.term,
        term_normalized=row.term_normalized,
        source=row.source,
        status=row.status,
        llm_label=row.llm_label,
        llm_score=row.llm_score,
        llm_reason=row.llm_reason,
        llm_attempts=row.llm_attempts or 0,
        captured_at=_from_db(row.captured_at),
        expires_at=_from_db(row.expires_at),
        queried_at=_from_db(row.queried_at),
        rejection_reason=row.rejection_reason,
        raw_title=row.raw_title,
        raw_summary=row.raw_summary,
        url=row.url,
        metadata=dict(row.meta or {}),
    )


def _root(row: RootKeywordModel) -> RootKeyword:
    return RootKeyword(
        id=row.id,
        label=row.label,
        keyword=row.keyword,
        locale=row.locale,
        is_active=bool(row.is_active),
        created_at=_from_db(row.created_at),
    )


def _task(row: TaskModel) -> Task:
    return Task(
        task_id=row.id,
        run_id=row.run_id,
        status=row.status,
        keyword=row.keyword,
        locale=row.locale,
        timeframe=row.timeframe,
        posted_at=_from_db(row.posted_at),
        completed_at=_from_db(row.completed_at),
        metadata=dict(row.meta or {}),
        request=row.request,
        result=row.result,
        cost=row.cost,
        error_message=row.error_message,
    )


def _snapshot(row: KeywordSnapshotModel) -> KeywordSnapshot:
    return KeywordSnapshot(
        keyword=row.keyword,
        locale=row.locale,
        timeframe=row.timeframe,
        collected_at=_from_db(row.collected_at),
        trend_score=row.trend_score,
        run_id=row.run_id,
        task_id=row.task_id,
    )


def _alert(row: AlertModel) -> Alert:
    return Alert(
        id=row.id,
        keyword=row.keyword,
        locale=row.locale,
        priority=row.priority,
        spike_score=row.spike_score,
        triggered_at=_from_db(row.triggered_at),
        bucket=row.bucket,
    )


# Statuses a run may move out of when heading to a given status
_RUN_PREDECESSORS = {
    status: [s.value for s in RunStatus if not s.is_terminal and s.rank < status.rank]
    for status in RunStatus
}
_RUN_PREDECESSORS[RunStatus.RUNNING_WITH_ERRORS] = [
    RunStatus.QUEUED.value, RunStatus.RUNNING.value,
]


# ── Database class ───────────────────────────────────────────────────────────

class Database:
    """Database manager — singleton in the service, one per test."""

    def __init__(self, database_url: Optional[str] = None):
        url = database_url or get_settings().database_url
        if "aiosqlite" in url:
            url = url.replace("sqlite+aiosqlite", "sqlite")

        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite":
            db_path = parsed.database
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
                self.engine = create_engine(
                    url, echo=False, connect_args={"check_same_thread": False},
                )
            else:
                # One shared connection, otherwise each session sees an empty DB
                self.engine = create_engine(
                    url, echo=False,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
        else:
            self.engine = create_engine(url, echo=False, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_tables(self):
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not create tables: {e}") from e

    @contextmanager
    def get_session(self) -> Session:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Store operation failed: {e}")
            raise StoreError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── News ──────────────────────────────────────────────────────────

    def get_news_by_key(self, url_key: str) -> Optional[NewsItem]:
        with self.get_session() as session:
            row = session.query(NewsItemModel).filter(NewsItemModel.url_key == url_key).first()
            return _news(row) if row else None

    def insert_news(self, data: Dict[str, Any]) -> NewsItem:
        now = _to_db(utcnow())
        with self.get_session() as session:
            row = NewsItemModel(
                id=new_id(),
                url_key=data["url_key"],
                url=data["url"],
                title=data["title"],
                source=data.get("source"),
                summary=data.get("summary"),
                published_at=_to_db(data.get("published_at")),
                keywords=list(data.get("keywords") or []),
                meta=dict(data.get("metadata") or {}),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            return _news(row)

    def update_news(self, news_id: str, updates: Dict[str, Any]):
        fields = {("meta" if k == "metadata" else k): v for k, v in updates.items()}
        if "published_at" in fields:
            fields["published_at"] = _to_db(fields["published_at"])
        fields["updated_at"] = _to_db(utcnow())
        with self.get_session() as session:
            session.query(NewsItemModel).filter(NewsItemModel.id == news_id).update(
                fields, synchronize_session=False,
            )

    def count_news(self) -> int:
        with self.get_session() as session:
            return session.query(func.count(NewsItemModel.id)).scalar() or 0

    def list_news(self, limit: int = 50) -> List[NewsItem]:
        with self.get_session() as session:
            rows = session.query(NewsItemModel).order_by(
                NewsItemModel.published_at.desc()
            ).limit(limit).all()
            return [_news(r) for r in rows]

    # ── Candidates ────────────────────────────────────────────────────

    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        with self.get_session() as session:
            row = session.get(CandidateModel, candidate_id)
            return _candidate(row) if row else None

    def insert_candidate_if_absent(self, data: Dict[str, Any]) -> bool:
        """Insert unless (term_normalized, source) exists. Returns True when inserted."""
        try:
            with self.get_session() as session:
                exists = session.query(CandidateModel.id).filter(
                    CandidateModel.term_normalized == data["term_normalized"],
                    CandidateModel.source == data["source"],
                ).first()
                if exists:
                    return False
                session.add(CandidateModel(
                    id=new_id(),
                    term=data["term"],
                    term_normalized=data["term_normalized"],
                    source=data["source"],
                    status=CandidateStatus.PENDING.value,
                    llm_attempts=0,
                    captured_at=_to_db(data["captured_at"]),
                    expires_at=_to_db(data["expires_at"]),
                    raw_title=data.get("raw_title"),
                    raw_summary=data.get("raw_summary"),
                    url=data.get("url"),
                    meta=dict(data.get("metadata") or {}),
                    updated_at=_to_db(utcnow()),
                ))
                session.flush()
                return True
        except StoreError as e:
            # Lost a race with a concurrent insert of the same natural key
            if isinstance(e.__cause__, IntegrityError):
                return False
            raise

    def query_candidates(
        self,
        statuses: Optional[Iterable[str]] = None,
        limit: Optional[int] = None,
        newest_first: bool = True,
        max_attempts: Optional[int] = None,
        unexpired_at: Optional[datetime] = None,
    ) -> List[Candidate]:
        with self.get_session() as session:
            query = session.query(CandidateModel)
            if statuses:
                query = query.filter(CandidateModel.status.in_(_values(statuses)))
            if max_attempts is not None:
                query = query.filter(CandidateModel.llm_attempts < max_attempts)
            if unexpired_at is not None:
                query = query.filter(CandidateModel.expires_at > _to_db(unexpired_at))
            order = CandidateModel.captured_at.desc() if newest_first else CandidateModel.captured_at.asc()
            query = query.order_by(order)
            if limit is not None:
                query = query.limit(limit)
            return [_candidate(r) for r in query.all()]

    def transition_candidate(
        self,
        candidate_id: str,
        from_statuses: Iterable[str],
        updates: Dict[str, Any],
    ) -> bool:
        """Apply updates only if the candidate is still in one of from_statuses."""
        fields = {("meta" if k == "metadata" else k): v for k, v in updates.items()}
        for key in ("captured_at", "expires_at", "queried_at", "llm_last_attempt"):
            if key in fields:
                fields[key] = _to_db(fields[key])
        fields["updated_at"] = _to_db(utcnow())
        with self.get_session() as session:
            count = session.query(CandidateModel).filter(
                CandidateModel.id == candidate_id,
                CandidateModel.status.in_(_values(from_statuses)),
            ).update(fields, synchronize_session=False)
            return count > 0

    def expire_candidates(self, now: datetime) -> int:
        """Bulk pending/approved → expired for rows past expires_at."""
        with self.get_session() as session:
            return session.query(CandidateModel).filter(
                CandidateModel.status.in_([CandidateStatus.PENDING.value, CandidateStatus.APPROVED.value]),
                CandidateModel.expires_at < _to_db(now),
            ).update(
                {"status": CandidateStatus.EXPIRED.value, "updated_at": _to_db(utcnow())},
                synchronize_session=False,
            )

    # ── Root keywords ─────────────────────────────────────────────────

    def list_roots(self, active_only: bool = True) -> List[RootKeyword]:
        with self.get_session() as session:
            query = session.query(RootKeywordModel)
            if active_only:
                query = query.filter(RootKeywordModel.is_active.is_(True))
            return [_root(r) for r in query.order_by(RootKeywordModel.label.asc()).all()]

    def create_root(self, label: str, keyword: str, locale: str = "global") -> RootKeyword:
        with self.get_session() as session:
            row = RootKeywordModel(
                id=new_id(), label=label, keyword=keyword, locale=locale,
                is_active=True, created_at=_to_db(utcnow()),
            )
            session.add(row)
            session.flush()
            return _root(row)

    def set_root_active(self, root_id: str, is_active: bool) -> Optional[RootKeyword]:
        with self.get_session() as session:
            row = session.get(RootKeywordModel, root_id)
            if row is None:
                return None
            row.is_active = is_active
            session.flush()
            return _root(row)

    # ── Runs ──────────────────────────────────────────────────────────

    def create_run(self, run: Run) -> Run:
        with self.get_session() as session:
            session.add(RunModel(
                id=run.id,
                triggered_at=_to_db(run.triggered_at),
                status=RunStatus(run.status).value,
                trigger_source=run.trigger_source,
                root_keywords=list(run.root_keywords),
                meta=dict(run.metadata),
                cost_total=run.cost_total,
            ))
        return run

    def get_run(self, run_id: str) -> Optional[Run]:
        with self.get_session() as session:
            row = session.get(RunModel, run_id)
            if row is None:
                return None
            return self._run_with_counts(session, row)

    def list_runs(self, limit: int = 20) -> List[Run]:
        with self.get_session() as session:
            rows = session.query(RunModel).order_by(RunModel.triggered_at.desc()).limit(limit).all()
            return [self._run_with_counts(session, r) for r in rows]

    def _run_with_counts(self, session: Session, row: RunModel) -> Run:
        return Run(
            id=row.id,
            triggered_at=_from_db(row.triggered_at),
            status=row.status,
            trigger_source=row.trigger_source,
            root_keywords=list(row.root_keywords or []),
            metadata=dict(row.meta or {}),
            task_counts=self._task_counts(session, row.id),
            cost_total=round(row.cost_total or 0.0, 6),
            completed_at=_from_db(row.completed_at),
        )

    def advance_run_status(
        self,
        run_id: str,
        status: RunStatus,
        completed_at: Optional[datetime] = None,
    ) -> bool:
        """Move a run forward through the status lattice. Never regresses."""
        status = RunStatus(status)
        fields: Dict[str, Any] = {"status": status.value}
        if completed_at is not None:
            fields["completed_at"] = _to_db(completed_at)
        with self.get_session() as session:
            count = session.query(RunModel).filter(
                RunModel.id == run_id,
                RunModel.status.in_(_RUN_PREDECESSORS[status]),
            ).update(fields, synchronize_session=False)
            return count > 0

    def add_run_cost(self, run_id: str, amount: float):
        with self.get_session() as session:
            session.query(RunModel).filter(RunModel.id == run_id).update(
                {"cost_total": RunModel.cost_total + amount}, synchronize_session=False,
            )

    def update_run_metadata(self, run_id: str, patch: Dict[str, Any]):
        with self.get_session() as session:
            row = session.get(RunModel, run_id)
            if row is not None:
                row.meta = {**(row.meta or {}), **patch}

    # ── Tasks ─────────────────────────────────────────────────────────

    def create_task(self, task: Task) -> Task:
        with self.get_session() as session:
            session.add(TaskModel(
                id=task.task_id,
                run_id=task.run_id,
                status=TaskStatus(task.status).value,
                keyword=task.keyword,
                locale=task.locale,
                timeframe=task.timeframe,
                posted_at=_to_db(task.posted_at),
                meta=dict(task.metadata),
                request=task.request,
            ))
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        with self.get_session() as session:
            row = session.get(TaskModel, task_id)
            return _task(row) if row else None

    def list_tasks(self, run_id: str, statuses: Optional[Iterable[str]] = None) -> List[Task]:
        with self.get_session() as session:
            query = session.query(TaskModel).filter(TaskModel.run_id == run_id)
            if statuses:
                query = query.filter(TaskModel.status.in_(_values(statuses)))
            rows = query.order_by(TaskModel.posted_at.asc(), TaskModel.id.asc()).all()
            return [_task(r) for r in rows]

    def transition_task(
        self,
        task_id: str,
        from_statuses: Iterable[str],
        to_status: TaskStatus,
        **fields: Any,
    ) -> bool:
        """Compare-and-set on task status. Returns False if the task moved on."""
        values = dict(fields)
        if "metadata" in values:
            values["meta"] = values.pop("metadata")
        if "completed_at" in values:
            values["completed_at"] = _to_db(values["completed_at"])
        values["status"] = TaskStatus(to_status).value
        with self.get_session() as session:
            count = session.query(TaskModel).filter(
                TaskModel.id == task_id,
                TaskModel.status.in_(_values(from_statuses)),
            ).update(values, synchronize_session=False)
            return count > 0

    def update_task_metadata(self, task_id: str, patch: Dict[str, Any]):
        with self.get_session() as session:
            row = session.get(TaskModel, task_id)
            if row is not None:
                row.meta = {**(row.meta or {}), **patch}

    def count_tasks(self, run_id: str) -> TaskCounts:
        with self.get_session() as session:
            return self._task_counts(session, run_id)

    @staticmethod
    def _task_counts(session: Session, run_id: str) -> TaskCounts:
        rows = session.query(TaskModel.status, func.count(TaskModel.id)).filter(
            TaskModel.run_id == run_id
        ).group_by(TaskModel.status).all()
        by_status = {status: count for status, count in rows}
        return TaskCounts(
            total=sum(by_status.values()),
            completed=by_status.get(TaskStatus.COMPLETED.value, 0),
            queued=by_status.get(TaskStatus.QUEUED.value, 0),
            error=by_status.get(TaskStatus.ERROR.value, 0),
            running=by_status.get(TaskStatus.RUNNING.value, 0),
        )

    # ── Snapshots ─────────────────────────────────────────────────────

    def add_snapshot(self, snapshot: KeywordSnapshot):
        with self.get_session() as session:
            session.add(KeywordSnapshotModel(
                keyword=snapshot.keyword,
                locale=snapshot.locale,
                timeframe=snapshot.timeframe,
                collected_at=_to_db(snapshot.collected_at),
                trend_score=snapshot.trend_score,
                run_id=snapshot.run_id,
                task_id=snapshot.task_id,
            ))

    def previous_snapshots(
        self,
        keyword: str,
        locale: str,
        before: datetime,
        limit: int,
    ) -> List[KeywordSnapshot]:
        """Up to `limit` snapshots strictly older than `before`, newest first."""
        with self.get_session() as session:
            rows = session.query(KeywordSnapshotModel).filter(
                KeywordSnapshotModel.keyword == keyword,
                KeywordSnapshotModel.locale == locale,
                KeywordSnapshotModel.collected_at < _to_db(before),
            ).order_by(
                KeywordSnapshotModel.collected_at.desc(), KeywordSnapshotModel.id.desc()
            ).limit(limit).all()
            return [_snapshot(r) for r in rows]

    def list_snapshots(self, timeframe: Optional[str] = None) -> List[KeywordSnapshot]:
        with self.get_session() as session:
            query = session.query(KeywordSnapshotModel)
            if timeframe is not None:
                query = query.filter(KeywordSnapshotModel.timeframe == timeframe)
            rows = query.order_by(KeywordSnapshotModel.collected_at.asc(), KeywordSnapshotModel.id.asc()).all()
            return [_snapshot(r) for r in rows]

    def snapshot_stats(self) -> Dict[str, Any]:
        with self.get_session() as session:
            keywords = session.query(
                func.count(func.distinct(KeywordSnapshotModel.keyword))
            ).scalar() or 0
            locales = session.query(
                func.count(func.distinct(KeywordSnapshotModel.locale))
            ).scalar() or 0
            latest = session.query(func.max(KeywordSnapshotModel.collected_at)).scalar()
            return {
                "keywords": keywords,
                "locales": locales,
                "latest": _from_db(latest),
            }

    # ── Alerts ────────────────────────────────────────────────────────

    def create_alert(self, alert: Alert) -> bool:
        """Insert an alert unless one exists for (keyword, locale, bucket)."""
        try:
            with self.get_session() as session:
                exists = session.query(AlertModel.id).filter(
                    AlertModel.keyword == alert.keyword,
                    AlertModel.locale == alert.locale,
                    AlertModel.bucket == alert.bucket,
                ).first()
                if exists:
                    return False
                session.add(AlertModel(
                    id=alert.id,
                    keyword=alert.keyword,
                    locale=alert.locale,
                    priority=_values([alert.priority])[0],
                    spike_score=alert.spike_score,
                    triggered_at=_to_db(alert.triggered_at),
                    bucket=alert.bucket,
                ))
                session.flush()
                return True
        except StoreError as e:
            if isinstance(e.__cause__, IntegrityError):
                return False
            raise

    def list_alerts(self, limit: int = 20, since: Optional[datetime] = None) -> List[Alert]:
        with self.get_session() as session:
            query = session.query(AlertModel)
            if since is not None:
                query = query.filter(AlertModel.triggered_at >= _to_db(since))
            rows = query.order_by(AlertModel.triggered_at.desc(), AlertModel.keyword.asc()).limit(limit).all()
            return [_alert(r) for r in rows]

    def count_alerts(self, since: Optional[datetime] = None) -> int:
        with self.get_session() as session:
            query = session.query(func.count(AlertModel.id))
            if since is not None:
                query = query.filter(AlertModel.triggered_at >= _to_db(since))
            return query.scalar() or 0


# ── Singleton ────────────────────────────────────────────────────────────────

_db: Optional[Database] = None


def get_database() -> Database:
    """Get or create database instance."""
    global _db
    if _db is None:
        _db = Database()
        _db.create_tables()
    return _db
