"""
Onboarding analytics tests

Run: pytest tests/test_analytics_engine.py -v
"""

import time
from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from craftguide.core.errors import DataUnavailable, TemplateNotFound
from craftguide.schemas.enums import EventKind
from craftguide.services.analytics import (
    AnalyticsEngine,
    at_risk_users,
    compute_onboarding_analytics,
    compute_user_journey,
    is_well_formed,
)
from craftguide.services.event_store import EventRecord, EventStore

T0 = datetime(2024, 3, 6, 9, 0, 0)


class FlakyStore(EventStore):
    """Delegates to a real store until told to fail or stall."""

    def __init__(self, inner: EventStore):
        self.inner = inner
        self.fail = False
        self.delay = 0.0

    def append_event(self, record):
        self.inner.append_event(record)

    def read_events(self, event_filter=None):
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise OSError("disk unavailable")
        yield from self.inner.read_events(event_filter)

    def read_guidance_state(self, user_id, template_id):
        return self.inner.read_guidance_state(user_id, template_id)

    def read_active_guidance(self, user_id):
        return self.inner.read_active_guidance(user_id)

    def write_guidance_state(self, state, events=()):
        self.inner.write_guidance_state(state, events)


def step_row(data, step_id, template_id="basic-woodworking"):
    for row in data.step_analytics:
        if row.template_id == template_id and row.step_id == step_id:
            return row
    raise AssertionError(f"no row for {template_id}/{step_id}")


class TestStepAnalytics:
    def test_drop_off_and_skip_counts(self, catalog, record):
        records = []
        for n in range(100):
            user = f"u{n}"
            records.append(record(user, "step_viewed", T0, step_id="s1"))
            if n < 80:
                records.append(record(user, "step_completed", T0 + timedelta(minutes=3), step_id="s1"))
            elif n < 90:
                records.append(record(user, "step_skipped", T0 + timedelta(minutes=1), step_id="s1"))

        data = compute_onboarding_analytics(records, catalog.list_templates())
        s1 = step_row(data, "s1")

        assert s1.view_count == 100
        assert s1.completion_count == 80
        assert s1.skip_count == 10
        assert s1.drop_off_rate == 20.0
        assert s1.step_name == "Measure"

    def test_unviewed_step_has_zero_drop_off(self, catalog, record):
        data = compute_onboarding_analytics(
            [record("u1", "step_viewed", T0, step_id="s1")],
            catalog.list_templates(),
        )
        s5 = step_row(data, "s5")

        assert s5.view_count == 0
        assert s5.drop_off_rate == 0.0

    def test_completion_counts_as_view(self, catalog, record):
        data = compute_onboarding_analytics(
            [record("u1", "step_completed", T0, step_id="s2")],
            catalog.list_templates(),
        )
        assert step_row(data, "s2").view_count == 1
        assert step_row(data, "s2").drop_off_rate == 0.0

    def test_rows_follow_template_order(self, catalog, record):
        data = compute_onboarding_analytics(
            [
                record("u1", "step_viewed", T0, step_id="s4"),
                record("u1", "step_viewed", T0, step_id="s2"),
            ],
            catalog.list_templates(),
        )
        assert [row.step_id for row in data.step_analytics] == ["s1", "s2", "s3", "s4", "s5"]

    def test_same_step_id_in_two_templates_is_kept_apart(self, catalog, record):
        data = compute_onboarding_analytics(
            [
                record("u1", "step_completed", T0, step_id="s1"),
                record("u2", "step_viewed", T0, template_id="leather-strap", step_id="s1"),
            ],
            catalog.list_templates(),
        )
        assert step_row(data, "s1").completion_count == 1
        assert step_row(data, "s1", "leather-strap").completion_count == 0
        assert step_row(data, "s1", "leather-strap").drop_off_rate == 100.0

    def test_average_seconds_from_durations(self, catalog, record):
        data = compute_onboarding_analytics(
            [
                record("u1", "step_completed", T0, step_id="s1", duration_seconds=30),
                record("u2", "step_completed", T0, step_id="s1", duration_seconds=90),
                record("u3", "step_completed", T0, step_id="s1"),
            ],
            catalog.list_templates(),
        )
        assert step_row(data, "s1").average_seconds_spent == 60.0

    def test_common_errors_most_frequent_first(self, catalog, record):
        errors = ["dull saw", "crooked cut", "blade slipped", "crooked cut", "wrong grit",
                  "blade slipped", "dull saw", "blade slipped", "  "]
        records = [
            record(f"u{n}", "step_error", T0, step_id="s2", error=message)
            for n, message in enumerate(errors)
        ]
        data = compute_onboarding_analytics(records, catalog.list_templates())

        row = step_row(data, "s2")
        assert row.common_errors == ["blade slipped", "crooked cut", "dull saw"]
        assert row.view_count == 0
        assert step_row(data, "s1").common_errors == []

    def test_errors_count_toward_funnel_reach(self, catalog, record):
        data = compute_onboarding_analytics(
            [record("u1", "step_error", T0, step_id="s2", error="blade slipped")],
            catalog.list_templates(),
        )
        entered = [stage.entered for stage in data.funnel_analysis if stage.template_id == "basic-woodworking"]
        assert entered == [1, 1, 0, 0, 0]


class TestFunnel:
    def test_skipping_ahead_enters_intermediate_steps(self, catalog, record):
        data = compute_onboarding_analytics(
            [
                record("u1", "step_completed", T0, step_id="s1"),
                record("u1", "step_completed", T0, step_id="s2"),
                record("u2", "step_completed", T0, step_id="s3"),
                record("u3", "step_viewed", T0, step_id="s1"),
            ],
            catalog.list_templates(),
        )
        funnel = [stage for stage in data.funnel_analysis if stage.template_id == "basic-woodworking"]

        assert [stage.entered for stage in funnel] == [3, 2, 1, 0, 0]
        assert [stage.completed for stage in funnel] == [1, 1, 1, 0, 0]
        assert funnel[0].conversion_rate == 33.3
        assert funnel[0].drop_off_count == 2
        assert funnel[3].conversion_rate == 0.0

    def test_entered_never_increases(self, catalog, record):
        records = [
            record(f"u{n}", "step_viewed", T0, step_id=f"s{1 + n % 5}")
            for n in range(23)
        ]
        data = compute_onboarding_analytics(records, catalog.list_templates())
        entered = [s.entered for s in data.funnel_analysis if s.template_id == "basic-woodworking"]

        assert entered == sorted(entered, reverse=True)


class TestUserLevelRollups:
    @pytest.fixture
    def journeys(self, record):
        return [
            # u1: starts after 2h, finishes after 3h
            record("u1", "step_viewed", T0, step_id="s1"),
            record("u1", "project_started", T0 + timedelta(hours=2)),
            record("u1", "project_completed", T0 + timedelta(hours=3)),
            # u2: starts after 4h, never finishes
            record("u2", "tutorial_completed", T0, template_id="tool-safety"),
            record("u2", "project_started", T0 + timedelta(hours=4)),
            # u3: never starts
            record("u3", "step_viewed", T0, step_id="s1"),
        ]

    def test_completion_stats(self, catalog, journeys):
        stats = compute_onboarding_analytics(journeys, catalog.list_templates()).completion_stats

        assert stats.started == 2
        assert stats.completed == 1
        assert stats.completion_rate == 33.3
        assert stats.average_completion_minutes == 180.0
        assert stats.median_completion_minutes == 180.0

    def test_time_to_first_project_ignores_non_starters(self, catalog, journeys):
        ttfp = compute_onboarding_analytics(journeys, catalog.list_templates()).time_to_first_project

        assert ttfp.sample_size == 2
        assert ttfp.average_hours == 3.0
        assert ttfp.median_hours == 3.0
        assert ttfp.percentiles.p25 == 2.5
        assert ttfp.percentiles.p90 == 3.8

    def test_empty_record_set(self, catalog):
        data = compute_onboarding_analytics([], catalog.list_templates())

        assert data.total_users == 0
        assert data.completion_stats.completion_rate == 0.0
        assert data.time_to_first_project.sample_size == 0
        assert data.step_analytics == []
        assert data.cohort_analysis.cohorts == []

    def test_cohorts_by_week_skip_empty_weeks(self, catalog, record):
        week_one = datetime(2024, 3, 6, 9)   # Wednesday, week of 2024-03-04
        week_three = datetime(2024, 3, 18, 9)  # Monday
        data = compute_onboarding_analytics(
            [
                record("u1", "step_viewed", week_one, step_id="s1"),
                record("u1", "project_completed", week_one + timedelta(minutes=30)),
                record("u2", "step_viewed", week_one, step_id="s1"),
                record("u3", "step_viewed", week_three, step_id="s1"),
            ],
            catalog.list_templates(),
        )
        cohorts = data.cohort_analysis.cohorts

        assert [c.start_date for c in cohorts] == ["2024-03-04", "2024-03-18"]
        assert cohorts[0].user_count == 2
        assert cohorts[0].completion_rate == 50.0
        assert cohorts[0].average_minutes == 30.0
        assert cohorts[1].completion_rate == 0.0


class TestMalformedRecords:
    def test_malformed_records_are_counted_not_fatal(self, catalog, record):
        records = [
            record("u1", "step_viewed", T0, step_id="s1"),
            record(None, "step_viewed", T0, step_id="s1"),
            record("u2", "step_viewed", None, step_id="s1"),
            record("u3", "step_completed", T0, step_id=None),
            record("u4", None, T0),
        ]
        data = compute_onboarding_analytics(records, catalog.list_templates())

        assert data.diagnostics.records_read == 5
        assert data.diagnostics.skipped_records == 4
        assert data.total_users == 1
        assert step_row(data, "s1").view_count == 1

    def test_is_well_formed(self, record):
        assert is_well_formed(record("u1", "project_started", T0))
        assert not is_well_formed(record("u1", "step_viewed", T0))

    def test_unknown_kind_in_store_is_skipped(self, engine, guidance, analytics):
        guidance.start_guidance("u1", "basic-woodworking")
        with engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO onboarding_event (user_id, kind, template_id, step_id, occurred_at) "
                    "VALUES ('legacy', 'onboarding_abandoned', 'basic-woodworking', NULL, '2024-03-06 09:00:00')"
                )
            )

        data = analytics.get_onboarding_analytics()

        assert data.diagnostics.records_read == 2
        assert data.diagnostics.skipped_records == 1
        assert data.total_users == 1
        assert analytics.get_user_journey_metrics("legacy").started_at is None


class TestAnalyticsEngine:
    def test_recompute_is_identical(self, guidance, analytics, clock):
        guidance.start_guidance("u1", "basic-woodworking")
        clock.advance(minutes=10)
        guidance.complete_step("u1", "s1", duration_seconds=600)
        guidance.track_event("u2", EventKind.step_viewed, template_id="basic-woodworking", step_id="s1")

        first = analytics.get_onboarding_analytics()
        second = analytics.get_onboarding_analytics()

        assert first.model_dump_json() == second.model_dump_json()
        assert first.total_users == 2

    def test_unknown_template_filter(self, analytics):
        with pytest.raises(TemplateNotFound):
            analytics.get_onboarding_analytics(template_id="nope")

    def test_template_filter_limits_rows(self, guidance, analytics):
        guidance.start_guidance("u1", "leather-strap")
        guidance.complete_step("u1", "s1")
        guidance.start_guidance("u2", "basic-woodworking")

        data = analytics.get_onboarding_analytics(template_id="leather-strap")

        assert {row.template_id for row in data.step_analytics} == {"leather-strap"}
        assert data.total_users == 1

    def test_window_bounds(self, guidance, analytics, clock):
        guidance.start_guidance("u1", "basic-woodworking")
        clock.advance(days=10)
        guidance.start_guidance("u2", "basic-woodworking")

        data = analytics.get_onboarding_analytics(start=T0 + timedelta(days=1))

        assert data.total_users == 1

    def test_store_failure_keeps_previous_snapshot(self, catalog, store, guidance):
        flaky = FlakyStore(store)
        engine = AnalyticsEngine(catalog, flaky, read_timeout_seconds=5)
        guidance.start_guidance("u1", "basic-woodworking")
        good = engine.get_onboarding_analytics()

        flaky.fail = True
        with pytest.raises(DataUnavailable):
            engine.get_onboarding_analytics()

        assert engine.last_snapshot() == good

    def test_slow_store_times_out(self, catalog, store):
        flaky = FlakyStore(store)
        flaky.delay = 0.5
        engine = AnalyticsEngine(catalog, flaky, read_timeout_seconds=0.05)

        with pytest.raises(DataUnavailable):
            engine.get_onboarding_analytics()
        assert engine.last_snapshot() is None

    def test_snapshot_cache_is_bounded(self, catalog, store, guidance):
        engine = AnalyticsEngine(catalog, store, read_timeout_seconds=5, snapshot_cache_size=3)
        guidance.start_guidance("u1", "basic-woodworking")
        starts = [T0 - timedelta(days=n) for n in range(10)]

        for start in starts:
            engine.get_onboarding_analytics(start=start)

        assert engine.snapshot_count() == 3
        assert engine.last_snapshot(start=starts[0]) is None
        assert engine.last_snapshot(start=starts[-1]) is not None

    def test_snapshot_cache_evicts_least_recently_used(self, catalog, store):
        engine = AnalyticsEngine(catalog, store, read_timeout_seconds=5, snapshot_cache_size=2)
        first, second, third = (T0 + timedelta(days=n) for n in range(3))

        engine.get_onboarding_analytics(start=first)
        engine.get_onboarding_analytics(start=second)
        engine.last_snapshot(start=first)
        engine.get_onboarding_analytics(start=third)

        assert engine.last_snapshot(start=first) is not None
        assert engine.last_snapshot(start=second) is None
        assert engine.snapshot_count() == 2

    def test_at_risk_users_use_engine_clock(self, catalog, store, guidance, clock):
        engine = AnalyticsEngine(catalog, store, read_timeout_seconds=5, clock=clock)
        guidance.start_guidance("u1", "basic-woodworking")
        guidance.start_guidance("u2", "leather-strap")
        guidance.complete_step("u2", "s1")
        guidance.complete_step("u2", "s2")

        assert engine.get_at_risk_users() == []

        clock.advance(hours=72)
        flagged = engine.get_at_risk_users()

        assert [user.user_id for user in flagged] == ["u1"]
        assert flagged[0].reason == 'Stuck on "Measure" for 72h'
        assert flagged[0].risk_score == 0.75

    def test_user_journey(self, guidance, analytics, clock):
        guidance.track_event("u1", EventKind.tutorial_completed, template_id="tool-safety")
        clock.advance(hours=1)
        guidance.start_guidance("u1", "basic-woodworking")
        guidance.complete_step("u1", "s1")
        guidance.complete_step("u1", "s2")
        guidance.track_event("u1", EventKind.step_skipped, template_id="basic-woodworking", step_id="s4")

        journey = analytics.get_user_journey_metrics("u1")

        assert journey.started_at == T0
        assert journey.first_project_started
        assert not journey.first_project_completed
        assert journey.steps_completed == 2
        assert journey.steps_skipped == 1
        assert journey.tutorials_completed == 1
        assert journey.drop_off_point == "Sand"
        assert journey.total_duration_minutes is None

    def test_completed_journey(self, guidance, analytics, clock):
        guidance.start_guidance("u1", "leather-strap")
        clock.advance(minutes=15)
        guidance.complete_step("u1", "s1")
        clock.advance(minutes=15)
        guidance.complete_step("u1", "s2")

        journey = analytics.get_user_journey_metrics("u1")

        assert journey.first_project_completed
        assert journey.total_duration_minutes == 30.0
        assert journey.drop_off_point is None

    def test_unknown_user_journey(self, catalog):
        journey = compute_user_journey("ghost", [], catalog)
        assert journey.started_at is None
        assert journey.steps_completed == 0


class TestAtRiskUsers:
    @pytest.fixture
    def records(self, record):
        hours = lambda n: T0 + timedelta(hours=n)
        return [
            # stuck mid-project
            record("u1", "project_started", hours(0)),
            record("u1", "step_completed", hours(1), step_id="s1"),
            # tutorial only
            record("u2", "tutorial_completed", hours(0), template_id="tool-safety"),
            # recently active, no project
            record("u3", "step_viewed", hours(40), step_id="s1"),
            # finished
            record("u4", "project_started", hours(0)),
            record("u4", "project_completed", hours(2)),
            # viewed once, then nothing
            record("u5", "step_viewed", hours(0), step_id="s1"),
            # project started recently
            record("u6", "project_started", hours(45)),
        ]

    def test_flags_and_orders_by_risk(self, catalog, records):
        flagged = at_risk_users(records, catalog, T0 + timedelta(hours=50))

        assert [user.user_id for user in flagged] == ["u2", "u5", "u1"]
        assert [user.risk_score for user in flagged] == [1.0, 1.0, 0.51]

    def test_reasons(self, catalog, records):
        flagged = {user.user_id: user for user in at_risk_users(records, catalog, T0 + timedelta(hours=50))}

        assert flagged["u1"].reason == 'Stuck on "Cut" for 49h'
        assert flagged["u1"].idle_hours == 49.0
        assert flagged["u2"].reason == "Completed a tutorial but no first project started after 50h"
        assert flagged["u5"].reason == "Started onboarding but no activity for 50h"

    def test_completed_users_never_flagged(self, catalog, records):
        flagged = at_risk_users(records, catalog, T0 + timedelta(days=365))
        assert "u4" not in {user.user_id for user in flagged}

    def test_thresholds_are_adjustable(self, catalog, records):
        flagged = at_risk_users(records, catalog, T0 + timedelta(hours=50), stuck_hours=4, idle_hours=100)
        assert [user.user_id for user in flagged] == ["u1", "u6"]

    def test_unknown_template_falls_back_to_project_id(self, catalog, record):
        flagged = at_risk_users(
            [record("u1", "project_started", T0, template_id="retired")],
            catalog,
            T0 + timedelta(hours=96),
        )
        assert flagged[0].reason == "Stuck on project retired for 96h"
        assert flagged[0].risk_score == 1.0
