"""Onboarding analytics: folds event records into dashboard rollups.

Everything below ``AnalyticsEngine`` is a pure function of the record list
and the catalog, so the same records always produce the same output. The
engine itself only adds the bounded store read and a small LRU of last-good
snapshots per query for callers that prefer stale data over none.
"""

from __future__ import annotations

import math
import statistics
import threading
from collections import Counter, OrderedDict, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from loguru import logger

from craftguide.core import analytics_config as cfg
from craftguide.core.config import ANALYTICS_READ_TIMEOUT_SECONDS
from craftguide.core.errors import TemplateNotFound
from craftguide.schemas.analytics import (
    AtRiskUser,
    Cohort,
    CohortAnalysis,
    CompletionStats,
    Diagnostics,
    FunnelStage,
    InsightThresholds,
    OnboardingAnalyticsData,
    Percentiles,
    StepAnalytics,
    TimeToFirstProject,
    UserJourneyMetrics,
)
from craftguide.schemas.enums import STEP_EVENT_KINDS, EventKind
from craftguide.schemas.templates import ProjectTemplate
from craftguide.services.catalog import TemplateCatalog
from craftguide.services.event_store import (
    EventFilter,
    EventRecord,
    EventStore,
    as_naive_utc,
    read_events_bounded,
    utcnow,
)
from craftguide.services.insights import generate_insights

StepKey = Tuple[str, str]


def _round(value: float) -> float:
    return round(value, cfg.ROUND_DIGITS)


def _rate(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return _round(part / whole * 100)


def _mean(values: Sequence[float]) -> float:
    return _round(statistics.fmean(values)) if values else 0.0


def _median(values: Sequence[float]) -> float:
    return _round(statistics.median(values)) if values else 0.0


def _percentile(values: Sequence[float], fraction: float) -> float:
    """Linear-interpolated percentile; 0 for an empty sample."""
    if not values:
        return 0.0
    ordered = sorted(values)
    position = (len(ordered) - 1) * fraction
    lower = math.floor(position)
    upper = min(lower + 1, len(ordered) - 1)
    value = ordered[lower] + (ordered[upper] - ordered[lower]) * (position - lower)
    return _round(value)


def _minutes(delta: timedelta) -> float:
    return delta.total_seconds() / 60


def _week_start(moment: datetime) -> str:
    return (moment.date() - timedelta(days=moment.weekday())).isoformat()


def is_well_formed(record: EventRecord) -> bool:
    if not record.user_id or record.kind is None or record.occurred_at is None:
        return False
    if record.kind in STEP_EVENT_KINDS and not record.step_id:
        return False
    return True


def partition_records(records: Iterable[EventRecord]) -> Tuple[List[EventRecord], int]:
    valid: List[EventRecord] = []
    skipped = 0
    for record in records:
        if is_well_formed(record):
            valid.append(
                record
                if record.occurred_at.tzinfo is None
                else EventRecord(
                    id=record.id,
                    user_id=record.user_id,
                    kind=record.kind,
                    occurred_at=as_naive_utc(record.occurred_at),
                    template_id=record.template_id,
                    step_id=record.step_id,
                    metadata=record.metadata,
                )
            )
        else:
            skipped += 1
    return valid, skipped


@dataclass
class _UserTimeline:
    first_seen: datetime
    first_project_started: Optional[datetime] = None
    project_completed: Optional[datetime] = None

    def completion_minutes(self) -> Optional[float]:
        if self.project_completed is None:
            return None
        return _minutes(self.project_completed - self.first_seen)


def _timelines(records: Sequence[EventRecord]) -> Dict[str, _UserTimeline]:
    timelines: Dict[str, _UserTimeline] = {}
    for record in records:
        at = record.occurred_at
        timeline = timelines.get(record.user_id)
        if timeline is None:
            timeline = timelines[record.user_id] = _UserTimeline(first_seen=at)
        elif at < timeline.first_seen:
            timeline.first_seen = at

        if record.kind == EventKind.project_started:
            if timeline.first_project_started is None or at < timeline.first_project_started:
                timeline.first_project_started = at
        elif record.kind == EventKind.project_completed:
            if timeline.project_completed is None or at < timeline.project_completed:
                timeline.project_completed = at
    return timelines


# ---------- sections ----------

def completion_stats(timelines: Dict[str, _UserTimeline]) -> CompletionStats:
    durations = [
        minutes
        for minutes in (timeline.completion_minutes() for timeline in timelines.values())
        if minutes is not None
    ]
    started = sum(1 for t in timelines.values() if t.first_project_started is not None)
    return CompletionStats(
        started=started,
        completed=len(durations),
        completion_rate=_rate(len(durations), len(timelines)),
        average_completion_minutes=_mean(durations),
        median_completion_minutes=_median(durations),
    )


def time_to_first_project(timelines: Dict[str, _UserTimeline]) -> TimeToFirstProject:
    hours = [
        (t.first_project_started - t.first_seen).total_seconds() / 3600
        for t in timelines.values()
        if t.first_project_started is not None
    ]
    return TimeToFirstProject(
        average_hours=_mean(hours),
        median_hours=_median(hours),
        percentiles=Percentiles(
            p25=_percentile(hours, 0.25),
            p75=_percentile(hours, 0.75),
            p90=_percentile(hours, 0.90),
        ),
        sample_size=len(hours),
    )


def cohort_analysis(timelines: Dict[str, _UserTimeline]) -> CohortAnalysis:
    buckets: Dict[str, List[_UserTimeline]] = defaultdict(list)
    for timeline in timelines.values():
        buckets[_week_start(timeline.first_seen)].append(timeline)

    cohorts = []
    for start_date in sorted(buckets):
        members = buckets[start_date]
        durations = [m for m in (t.completion_minutes() for t in members) if m is not None]
        cohorts.append(
            Cohort(
                start_date=start_date,
                user_count=len(members),
                completion_rate=_rate(len(durations), len(members)),
                average_minutes=_mean(durations),
            )
        )
    return CohortAnalysis(period=cfg.COHORT_PERIOD, cohorts=cohorts)


@dataclass
class _StepTallies:
    viewers: Set[str]
    completers: Set[str]
    skippers: Set[str]
    durations: List[float]
    errors: Counter


def _step_tallies(
    records: Sequence[EventRecord],
    templates: Sequence[ProjectTemplate],
) -> Tuple[Dict[StepKey, _StepTallies], Dict[str, Dict[str, int]]]:
    positions: Dict[StepKey, int] = {}
    for template in templates:
        for index, step in enumerate(template.steps):
            positions[(template.id, step.id)] = index

    tallies: Dict[StepKey, _StepTallies] = {
        key: _StepTallies(set(), set(), set(), [], Counter()) for key in positions
    }
    # furthest step position each user reached, per template
    reach: Dict[str, Dict[str, int]] = defaultdict(dict)

    for record in records:
        if record.kind not in STEP_EVENT_KINDS:
            continue
        key = (record.template_id, record.step_id)
        if key not in positions:
            continue
        tally = tallies[key]
        if record.kind in (EventKind.step_viewed, EventKind.step_completed):
            tally.viewers.add(record.user_id)
        if record.kind == EventKind.step_completed:
            tally.completers.add(record.user_id)
            duration = record.metadata.get("duration_seconds")
            if isinstance(duration, (int, float)) and not isinstance(duration, bool):
                tally.durations.append(float(duration))
        if record.kind == EventKind.step_skipped:
            tally.skippers.add(record.user_id)
        if record.kind == EventKind.step_error:
            error = record.metadata.get("error")
            if isinstance(error, str) and error.strip():
                tally.errors[error.strip()] += 1

        furthest = reach[record.template_id]
        position = positions[key]
        if furthest.get(record.user_id, -1) < position:
            furthest[record.user_id] = position

    return tallies, reach


def _common_errors(errors: Counter) -> List[str]:
    ranked = sorted(errors.items(), key=lambda item: (-item[1], item[0]))
    return [message for message, _ in ranked[: cfg.COMMON_ERRORS_LIMIT]]


def step_analytics(
    templates: Sequence[ProjectTemplate],
    tallies: Dict[StepKey, _StepTallies],
) -> List[StepAnalytics]:
    rows = []
    for template in templates:
        for step in template.steps:
            tally = tallies[(template.id, step.id)]
            views = len(tally.viewers)
            completions = len(tally.completers)
            rows.append(
                StepAnalytics(
                    template_id=template.id,
                    step_id=step.id,
                    step_name=step.title,
                    view_count=views,
                    completion_count=completions,
                    skip_count=len(tally.skippers),
                    drop_off_rate=_rate(views - completions, views),
                    average_seconds_spent=_mean(tally.durations),
                    common_errors=_common_errors(tally.errors),
                )
            )
    return rows


def funnel_analysis(
    templates: Sequence[ProjectTemplate],
    tallies: Dict[StepKey, _StepTallies],
    reach: Dict[str, Dict[str, int]],
) -> List[FunnelStage]:
    stages = []
    for template in templates:
        furthest = reach.get(template.id, {})
        for index, step in enumerate(template.steps):
            entered = sum(1 for position in furthest.values() if position >= index)
            completed = len(tallies[(template.id, step.id)].completers)
            stages.append(
                FunnelStage(
                    template_id=template.id,
                    step_id=step.id,
                    step=step.title,
                    entered=entered,
                    completed=completed,
                    conversion_rate=_rate(completed, entered),
                    drop_off_count=entered - completed,
                )
            )
    return stages


def _templates_in_play(
    records: Sequence[EventRecord],
    templates: Sequence[ProjectTemplate],
) -> List[ProjectTemplate]:
    referenced = {record.template_id for record in records if record.template_id}
    return [template for template in templates if template.id in referenced]


def compute_onboarding_analytics(
    records: Iterable[EventRecord],
    templates: Sequence[ProjectTemplate],
) -> OnboardingAnalyticsData:
    """Fold ``records`` into rollups; ``templates`` gives the canonical order."""
    records = list(records)
    valid, skipped = partition_records(records)
    timelines = _timelines(valid)
    in_play = _templates_in_play(valid, templates)
    tallies, reach = _step_tallies(valid, in_play)

    return OnboardingAnalyticsData(
        total_users=len(timelines),
        completion_stats=completion_stats(timelines),
        step_analytics=step_analytics(in_play, tallies),
        funnel_analysis=funnel_analysis(in_play, tallies, reach),
        time_to_first_project=time_to_first_project(timelines),
        cohort_analysis=cohort_analysis(timelines),
        diagnostics=Diagnostics(records_read=len(records), skipped_records=skipped),
    )


def _completed_steps(records: Iterable[EventRecord]) -> Set[StepKey]:
    return {(r.template_id, r.step_id) for r in records if r.kind == EventKind.step_completed}


def _latest_start(records: Iterable[EventRecord]) -> Optional[EventRecord]:
    latest = None
    for record in records:
        if record.kind == EventKind.project_started:
            if latest is None or record.occurred_at >= latest.occurred_at:
                latest = record
    return latest


def _first_incomplete_title(
    catalog: TemplateCatalog,
    start: Optional[EventRecord],
    completed: Set[StepKey],
) -> Optional[str]:
    """Title of the first step of the started template the user has not completed."""
    if start is None:
        return None
    template = catalog.get_template(start.template_id or "")
    if template is None:
        return None
    for step in template.steps:
        if (template.id, step.id) not in completed:
            return step.title
    return None


def compute_user_journey(
    user_id: str,
    records: Iterable[EventRecord],
    catalog: TemplateCatalog,
) -> UserJourneyMetrics:
    valid, _ = partition_records(r for r in records if r.user_id == user_id)
    if not valid:
        return UserJourneyMetrics(user_id=user_id)

    timeline = _timelines(valid)[user_id]
    completed = _completed_steps(valid)
    skipped = {(r.template_id, r.step_id) for r in valid if r.kind == EventKind.step_skipped}
    tutorials = {r.template_id or "" for r in valid if r.kind == EventKind.tutorial_completed}

    drop_off_point = None
    if timeline.project_completed is None:
        drop_off_point = _first_incomplete_title(catalog, _latest_start(valid), completed)

    minutes = timeline.completion_minutes()
    return UserJourneyMetrics(
        user_id=user_id,
        started_at=timeline.first_seen,
        completed_at=timeline.project_completed,
        total_duration_minutes=_round(minutes) if minutes is not None else None,
        steps_completed=len(completed),
        steps_skipped=len(skipped),
        tutorials_completed=len(tutorials),
        first_project_started=timeline.first_project_started is not None,
        first_project_completed=timeline.project_completed is not None,
        drop_off_point=drop_off_point,
    )


def _risk_score(idle_hours: float, threshold_hours: float) -> float:
    # 0.5 at the threshold, saturating at 1.0 once idle for twice as long
    if threshold_hours <= 0:
        return 1.0
    return round(min(1.0, idle_hours / (threshold_hours * 2)), 2)


def at_risk_users(
    records: Iterable[EventRecord],
    catalog: TemplateCatalog,
    now: datetime,
    *,
    stuck_hours: float = cfg.AT_RISK_STUCK_HOURS,
    idle_hours: float = cfg.AT_RISK_IDLE_HOURS,
) -> List[AtRiskUser]:
    """Users likely to drop off, highest risk first.

    A user with an unfinished project is at risk once idle for ``stuck_hours``;
    a user who never started a project, once idle for ``idle_hours``. Users
    who completed a project are never flagged.
    """
    valid, _ = partition_records(records)
    by_user: Dict[str, List[EventRecord]] = defaultdict(list)
    for record in valid:
        by_user[record.user_id].append(record)

    now = as_naive_utc(now)
    flagged = []
    for user_id, events in by_user.items():
        if any(r.kind == EventKind.project_completed for r in events):
            continue

        idle = max(0.0, (now - max(r.occurred_at for r in events)).total_seconds() / 3600)
        shown = f"{_round(idle):g}h"
        start = _latest_start(events)

        if start is not None:
            if idle < stuck_hours:
                continue
            title = _first_incomplete_title(catalog, start, _completed_steps(events))
            where = f'"{title}"' if title else f"project {start.template_id}"
            reason = f"Stuck on {where} for {shown}"
            score = _risk_score(idle, stuck_hours)
        else:
            if idle < idle_hours:
                continue
            if any(r.kind == EventKind.tutorial_completed for r in events):
                reason = f"Completed a tutorial but no first project started after {shown}"
            else:
                reason = f"Started onboarding but no activity for {shown}"
            score = _risk_score(idle, idle_hours)

        flagged.append(AtRiskUser(user_id=user_id, risk_score=score, reason=reason, idle_hours=_round(idle)))

    flagged.sort(key=lambda user: (-user.risk_score, user.user_id))
    return flagged


# ---------- engine ----------

SnapshotKey = Tuple[Optional[datetime], Optional[datetime], Optional[str]]


class AnalyticsEngine:
    def __init__(
        self,
        catalog: TemplateCatalog,
        store: EventStore,
        *,
        read_timeout_seconds: float = ANALYTICS_READ_TIMEOUT_SECONDS,
        snapshot_cache_size: int = cfg.SNAPSHOT_CACHE_SIZE,
        clock: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._read_timeout = read_timeout_seconds
        self._clock = clock or utcnow
        self._snapshot_cache_size = max(1, snapshot_cache_size)
        self._snapshots: OrderedDict[SnapshotKey, OnboardingAnalyticsData] = OrderedDict()
        self._snapshot_lock = threading.Lock()

    @staticmethod
    def _key(start, end, template_id) -> SnapshotKey:
        return (as_naive_utc(start), as_naive_utc(end), template_id)

    def get_onboarding_analytics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        template_id: Optional[str] = None,
    ) -> OnboardingAnalyticsData:
        templates = self._catalog.list_templates()
        if template_id is not None:
            template = self._catalog.get_template(template_id)
            if template is None:
                raise TemplateNotFound(template_id)
            templates = [template]

        records = read_events_bounded(
            self._store,
            EventFilter(start=start, end=end, template_id=template_id),
            self._read_timeout,
        )
        data = compute_onboarding_analytics(records, templates)

        self._remember(self._key(start, end, template_id), data)

        logger.info(
            f"Onboarding analytics computed | users={data.total_users} "
            f"records={data.diagnostics.records_read} skipped={data.diagnostics.skipped_records}"
        )
        return data

    def last_snapshot(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        template_id: Optional[str] = None,
    ) -> Optional[OnboardingAnalyticsData]:
        key = self._key(start, end, template_id)
        with self._snapshot_lock:
            data = self._snapshots.get(key)
            if data is not None:
                self._snapshots.move_to_end(key)
            return data

    def snapshot_count(self) -> int:
        with self._snapshot_lock:
            return len(self._snapshots)

    def _remember(self, key: SnapshotKey, data: OnboardingAnalyticsData) -> None:
        with self._snapshot_lock:
            self._snapshots[key] = data
            self._snapshots.move_to_end(key)
            while len(self._snapshots) > self._snapshot_cache_size:
                self._snapshots.popitem(last=False)

    def get_user_journey_metrics(self, user_id: str) -> UserJourneyMetrics:
        records = read_events_bounded(
            self._store,
            EventFilter(user_id=user_id),
            self._read_timeout,
        )
        return compute_user_journey(user_id, records, self._catalog)

    def get_at_risk_users(
        self,
        *,
        stuck_hours: float = cfg.AT_RISK_STUCK_HOURS,
        idle_hours: float = cfg.AT_RISK_IDLE_HOURS,
    ) -> List[AtRiskUser]:
        records = read_events_bounded(self._store, EventFilter(), self._read_timeout)
        flagged = at_risk_users(
            records,
            self._catalog,
            self._clock(),
            stuck_hours=stuck_hours,
            idle_hours=idle_hours,
        )
        logger.info(f"At-risk users computed | flagged={len(flagged)}")
        return flagged

    def generate_insights(
        self,
        thresholds: Optional[InsightThresholds] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[str]:
        data = self.get_onboarding_analytics(start=start, end=end)
        return generate_insights(data, thresholds or InsightThresholds())


__all__ = [
    "AnalyticsEngine",
    "at_risk_users",
    "compute_onboarding_analytics",
    "compute_user_journey",
    "is_well_formed",
    "partition_records",
]
