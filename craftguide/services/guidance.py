"""First-project guidance: per-user progression through a template's steps.

A guidance attempt moves ``not_started -> in_progress -> completed`` and never
leaves ``completed``. Mutations for one user are serialized with a keyed lock
and validated in full before anything is written, so a rejected call leaves
no trace in the store.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from loguru import logger

from craftguide.core.errors import (
    InvalidEvent,
    InvalidFeedback,
    NoActiveGuidance,
    TemplateNotFound,
    UnknownStep,
)
from craftguide.core.locks import KeyedLock
from craftguide.schemas.enums import EventKind, FeedbackDifficulty
from craftguide.schemas.templates import ProjectStep, ProjectTemplate
from craftguide.services.catalog import TemplateCatalog
from craftguide.services.event_store import (
    EventFilter,
    EventRecord,
    EventStore,
    GuidanceFeedbackRecord,
    GuidanceState,
    as_naive_utc,
    utcnow,
)

# Facts the presentation layer reports; the rest come from transitions here.
TRACKABLE_KINDS = frozenset(
    {
        EventKind.step_viewed,
        EventKind.step_skipped,
        EventKind.step_error,
        EventKind.tutorial_completed,
    }
)

COMPLETION_NOTES = (
    "Congratulations! You've completed your first project!",
    "Take a moment to admire your work and share it with the community.",
    "Ready for your next challenge?",
)


def _duration_phrase(minutes: int) -> str:
    if minutes < 60:
        return f"about {minutes} minutes"
    hours = max(1, round(minutes / 60))
    return f"about {hours} hour" + ("s" if hours != 1 else "")


def welcome_notes(template: ProjectTemplate) -> Tuple[str, ...]:
    return (
        f"Welcome to your first {template.craft_type.value} project!",
        f"This project should take {_duration_phrase(template.estimated_minutes)} to complete.",
        "Don't worry if it takes longer. Learning takes time!",
    )


def next_incomplete_index(template: ProjectTemplate, completed_step_ids: Iterable[str]) -> int:
    """Index of the first step, in template order, not yet completed."""
    completed = set(completed_step_ids)
    for index, step in enumerate(template.steps):
        if step.id not in completed:
            return index
    return len(template.steps)


def current_step(state: GuidanceState, template: ProjectTemplate) -> Optional[ProjectStep]:
    """Step under the pointer, or ``None`` once the template is complete."""
    if state.current_step_index >= len(template.steps):
        return None
    return template.steps[state.current_step_index]


class GuidanceService:
    def __init__(
        self,
        catalog: TemplateCatalog,
        store: EventStore,
        *,
        locks: Optional[KeyedLock] = None,
        clock: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._locks = locks or KeyedLock()
        self._clock = clock or utcnow

    @property
    def catalog(self) -> TemplateCatalog:
        return self._catalog

    def _now(self):
        return as_naive_utc(self._clock())

    def _require_template(self, template_id: str) -> ProjectTemplate:
        template = self._catalog.get_template(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return template

    # ---------- transitions ----------

    def start_guidance(self, user_id: str, template_id: str) -> GuidanceState:
        template = self._require_template(template_id)

        with self._locks.hold(user_id):
            existing = self._store.read_guidance_state(user_id, template_id)
            if existing is not None and not existing.is_completed:
                if not existing.is_active:
                    existing = replace(existing, is_active=True)
                    self._store.write_guidance_state(existing)
                    logger.info(f"Guidance resumed | user={user_id} template={template_id}")
                return existing

            now = self._now()
            events = [
                EventRecord(
                    user_id=user_id,
                    kind=EventKind.project_started,
                    occurred_at=now,
                    template_id=template_id,
                )
            ]
            state = GuidanceState(
                id=str(uuid.uuid4()),
                user_id=user_id,
                template_id=template_id,
                current_step_index=0,
                completed_step_ids=frozenset(),
                created_at=now,
                is_active=True,
                notes=welcome_notes(template),
            )
            if not template.steps:
                state = replace(state, completed_at=now, notes=state.notes + COMPLETION_NOTES)
                events.append(
                    EventRecord(
                        user_id=user_id,
                        kind=EventKind.project_completed,
                        occurred_at=now,
                        template_id=template_id,
                    )
                )

            self._store.write_guidance_state(state, events)

        logger.info(f"Guidance started | user={user_id} template={template_id}")
        return state

    def complete_step(
        self,
        user_id: str,
        step_id: str,
        *,
        duration_seconds: Optional[float] = None,
    ) -> GuidanceState:
        with self._locks.hold(user_id):
            state = self._store.read_active_guidance(user_id)
            if state is None:
                raise NoActiveGuidance(user_id)

            template = self._require_template(state.template_id)
            if template.index_of(step_id) is None:
                raise UnknownStep(step_id, template.id)

            now = self._now()
            metadata: Dict[str, Any] = {}
            if duration_seconds is not None:
                metadata["duration_seconds"] = float(duration_seconds)

            completed = state.completed_step_ids | {step_id}
            index = next_incomplete_index(template, completed)
            events = [
                EventRecord(
                    user_id=user_id,
                    kind=EventKind.step_completed,
                    occurred_at=now,
                    template_id=template.id,
                    step_id=step_id,
                    metadata=metadata,
                )
            ]

            completed_at = state.completed_at
            just_finished = completed_at is None and index == len(template.steps)
            if just_finished:
                completed_at = now
                events.append(
                    EventRecord(
                        user_id=user_id,
                        kind=EventKind.project_completed,
                        occurred_at=now,
                        template_id=template.id,
                    )
                )

            updated = replace(
                state,
                completed_step_ids=frozenset(completed),
                current_step_index=index,
                completed_at=completed_at,
                notes=state.notes + COMPLETION_NOTES if just_finished else state.notes,
            )
            self._store.write_guidance_state(updated, events)

        logger.info(
            f"Step completed | user={user_id} template={template.id} step={step_id} "
            f"index={index}/{len(template.steps)}"
        )
        if just_finished:
            logger.info(f"Guidance completed | user={user_id} template={template.id}")
        return updated

    def submit_feedback(
        self,
        user_id: str,
        difficulty: FeedbackDifficulty,
        helpfulness: int,
        suggestions: Optional[str] = None,
    ) -> GuidanceState:
        try:
            helpfulness = int(helpfulness)
            difficulty = FeedbackDifficulty(difficulty)
        except (TypeError, ValueError):
            raise InvalidFeedback(f"invalid feedback: difficulty={difficulty!r} helpfulness={helpfulness!r}") from None
        if not 1 <= helpfulness <= 5:
            raise InvalidFeedback("helpfulness must be between 1 and 5")

        with self._locks.hold(user_id):
            state = self._store.read_active_guidance(user_id)
            if state is None:
                raise NoActiveGuidance(user_id)

            updated = replace(
                state,
                feedback=GuidanceFeedbackRecord(
                    difficulty=difficulty,
                    helpfulness=helpfulness,
                    suggestions=suggestions,
                ),
            )
            self._store.write_guidance_state(updated)

        logger.info(f"Feedback submitted | user={user_id} template={state.template_id}")
        return updated

    def track_event(
        self,
        user_id: str,
        kind: EventKind,
        *,
        template_id: Optional[str] = None,
        step_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EventRecord:
        kind = EventKind(kind)
        if kind not in TRACKABLE_KINDS:
            raise InvalidEvent(f"{kind.value} events are recorded by guidance transitions only")

        if kind == EventKind.tutorial_completed:
            if not template_id:
                raise InvalidEvent("tutorial_completed requires template_id naming the tutorial")
            step_id = None
        else:
            if not template_id or not step_id:
                raise InvalidEvent(f"{kind.value} requires template_id and step_id")
            template = self._require_template(template_id)
            if template.index_of(step_id) is None:
                raise UnknownStep(step_id, template_id)
            if kind == EventKind.step_error and not (metadata or {}).get("error"):
                raise InvalidEvent("step_error requires metadata.error describing the failure")

        record = EventRecord(
            user_id=user_id,
            kind=kind,
            occurred_at=self._now(),
            template_id=template_id,
            step_id=step_id,
            metadata=dict(metadata or {}),
        )
        self._store.append_event(record)
        logger.debug(f"Event tracked | user={user_id} kind={kind.value} template={template_id} step={step_id}")
        return record

    # ---------- reads ----------

    def get_progress(self, user_id: str, template_id: str) -> Optional[GuidanceState]:
        return self._store.read_guidance_state(user_id, template_id)

    def get_guidance_progress(self, user_id: str) -> Optional[GuidanceState]:
        return self._store.read_active_guidance(user_id)

    def get_current_step(self, user_id: str) -> tuple[GuidanceState, ProjectTemplate, Optional[ProjectStep]]:
        state = self._store.read_active_guidance(user_id)
        if state is None:
            raise NoActiveGuidance(user_id)
        template = self._require_template(state.template_id)
        return state, template, current_step(state, template)

    def has_completed_first_project(self, user_id: str) -> bool:
        return any(
            record.kind == EventKind.project_completed
            for record in self._store.read_events(EventFilter(user_id=user_id))
        )


__all__ = [
    "COMPLETION_NOTES",
    "GuidanceService",
    "TRACKABLE_KINDS",
    "current_step",
    "next_incomplete_index",
    "welcome_notes",
]
