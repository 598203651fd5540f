"""Record store for guidance attempts and onboarding events.

The services only talk to :class:`EventStore`; the SQLAlchemy implementation
is the default, and every call opens its own session so callers on different
threads never share one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from craftguide.core.errors import DataUnavailable
from craftguide.models.event import OnboardingEvent
from craftguide.models.guidance import Guidance
from craftguide.schemas.enums import EventKind, FeedbackDifficulty, GuidanceStatus


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every stored datetime uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# ---------- records ----------

@dataclass(frozen=True)
class EventRecord:
    user_id: Optional[str]
    kind: Optional[EventKind]
    occurred_at: Optional[datetime]
    template_id: Optional[str] = None
    step_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)
    id: Optional[int] = None


@dataclass(frozen=True)
class GuidanceFeedbackRecord:
    difficulty: FeedbackDifficulty
    helpfulness: int
    suggestions: Optional[str] = None


@dataclass(frozen=True)
class GuidanceState:
    id: str
    user_id: str
    template_id: str
    current_step_index: int
    completed_step_ids: FrozenSet[str]
    created_at: datetime
    completed_at: Optional[datetime] = None
    is_active: bool = True
    feedback: Optional[GuidanceFeedbackRecord] = None
    notes: Tuple[str, ...] = ()

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def status(self) -> GuidanceStatus:
        if self.is_completed:
            return GuidanceStatus.completed
        return GuidanceStatus.in_progress


@dataclass(frozen=True)
class EventFilter:
    user_id: Optional[str] = None
    template_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


# ---------- interface ----------

class EventStore(ABC):
    """Durable storage for guidance attempts and append-only event records."""

    @abstractmethod
    def append_event(self, record: EventRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def read_events(self, event_filter: Optional[EventFilter] = None) -> Iterator[EventRecord]:
        raise NotImplementedError

    @abstractmethod
    def read_guidance_state(self, user_id: str, template_id: str) -> Optional[GuidanceState]:
        """Latest attempt for the pair, preferring an unfinished one."""
        raise NotImplementedError

    @abstractmethod
    def read_active_guidance(self, user_id: str) -> Optional[GuidanceState]:
        raise NotImplementedError

    @abstractmethod
    def write_guidance_state(self, state: GuidanceState, events: Iterable[EventRecord] = ()) -> None:
        """Persist ``state`` and ``events`` atomically."""
        raise NotImplementedError


# ---------- SQLAlchemy ----------

def _to_state(row: Guidance) -> GuidanceState:
    feedback = None
    if row.feedback_difficulty:
        feedback = GuidanceFeedbackRecord(
            difficulty=FeedbackDifficulty(row.feedback_difficulty),
            helpfulness=int(row.feedback_helpfulness or 0),
            suggestions=row.feedback_suggestions,
        )
    return GuidanceState(
        id=row.id,
        user_id=row.user_id,
        template_id=row.template_id,
        current_step_index=row.current_step_index,
        completed_step_ids=frozenset(row.completed_step_ids or []),
        created_at=row.created_at,
        completed_at=row.completed_at,
        is_active=bool(row.is_active),
        feedback=feedback,
        notes=tuple(row.notes or ()),
    )


def _parse_kind(value: Optional[str]) -> Optional[EventKind]:
    try:
        return EventKind(value) if value else None
    except ValueError:
        return None


def _to_record(row: OnboardingEvent) -> EventRecord:
    return EventRecord(
        id=row.id,
        user_id=row.user_id,
        kind=_parse_kind(row.kind),
        occurred_at=row.occurred_at,
        template_id=row.template_id,
        step_id=row.step_id,
        metadata=dict(row.meta) if isinstance(row.meta, dict) else {},
    )


def _to_row(record: EventRecord) -> OnboardingEvent:
    return OnboardingEvent(
        user_id=record.user_id,
        kind=record.kind.value if record.kind else None,
        template_id=record.template_id,
        step_id=record.step_id,
        occurred_at=as_naive_utc(record.occurred_at),
        meta=dict(record.metadata) or None,
    )


class SqlAlchemyEventStore(EventStore):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def append_event(self, record: EventRecord) -> None:
        with self._session_factory() as db:
            db.add(_to_row(record))
            db.commit()

    def read_events(self, event_filter: Optional[EventFilter] = None) -> Iterator[EventRecord]:
        event_filter = event_filter or EventFilter()
        query = select(OnboardingEvent)
        if event_filter.user_id is not None:
            query = query.where(OnboardingEvent.user_id == event_filter.user_id)
        if event_filter.template_id is not None:
            query = query.where(OnboardingEvent.template_id == event_filter.template_id)
        if event_filter.start is not None:
            query = query.where(OnboardingEvent.occurred_at >= as_naive_utc(event_filter.start))
        if event_filter.end is not None:
            query = query.where(OnboardingEvent.occurred_at < as_naive_utc(event_filter.end))
        query = query.order_by(OnboardingEvent.id.asc())

        with self._session_factory() as db:
            for row in db.execute(query).scalars():
                yield _to_record(row)

    def read_guidance_state(self, user_id: str, template_id: str) -> Optional[GuidanceState]:
        with self._session_factory() as db:
            row = db.execute(
                select(Guidance)
                .where(Guidance.user_id == user_id, Guidance.template_id == template_id)
                .order_by(Guidance.completed_at.isnot(None), Guidance.created_at.desc())
                .limit(1)
            ).scalars().first()
            return _to_state(row) if row else None

    def read_active_guidance(self, user_id: str) -> Optional[GuidanceState]:
        with self._session_factory() as db:
            row = db.execute(
                select(Guidance)
                .where(Guidance.user_id == user_id, Guidance.is_active.is_(True))
                .order_by(Guidance.created_at.desc())
                .limit(1)
            ).scalars().first()
            return _to_state(row) if row else None

    def write_guidance_state(self, state: GuidanceState, events: Iterable[EventRecord] = ()) -> None:
        with self._session_factory() as db:
            if state.is_active:
                db.execute(
                    update(Guidance)
                    .where(Guidance.user_id == state.user_id, Guidance.id != state.id)
                    .values(is_active=False)
                )

            row = db.get(Guidance, state.id) or Guidance(id=state.id)
            row.user_id = state.user_id
            row.template_id = state.template_id
            row.current_step_index = state.current_step_index
            row.completed_step_ids = sorted(state.completed_step_ids)
            row.is_active = state.is_active
            row.created_at = as_naive_utc(state.created_at)
            row.completed_at = as_naive_utc(state.completed_at)
            row.notes = list(state.notes)
            if state.feedback is not None:
                row.feedback_difficulty = state.feedback.difficulty.value
                row.feedback_helpfulness = state.feedback.helpfulness
                row.feedback_suggestions = state.feedback.suggestions
            db.add(row)

            for record in events:
                db.add(_to_row(record))

            db.commit()


# ---------- bounded reads ----------

_READ_POOL = ThreadPoolExecutor(max_workers=4, thread_name_prefix="event-read")


def read_events_bounded(
    store: EventStore,
    event_filter: Optional[EventFilter],
    timeout_seconds: float,
) -> List[EventRecord]:
    """Materialize ``store.read_events`` or raise :class:`DataUnavailable`.

    The read is not retried here; callers decide whether to try again.
    """
    future = _READ_POOL.submit(lambda: list(store.read_events(event_filter)))
    try:
        return future.result(timeout=timeout_seconds)
    except FuturesTimeout:
        future.cancel()
        logger.warning(f"Event read timed out after {timeout_seconds}s")
        raise DataUnavailable(f"Event store read timed out after {timeout_seconds}s") from None
    except (SQLAlchemyError, OSError) as exc:
        logger.warning(f"Event read failed: {exc}")
        raise DataUnavailable("Event store unavailable") from exc


__all__ = [
    "EventFilter",
    "EventRecord",
    "EventStore",
    "GuidanceFeedbackRecord",
    "GuidanceState",
    "SqlAlchemyEventStore",
    "as_naive_utc",
    "read_events_bounded",
    "utcnow",
]
