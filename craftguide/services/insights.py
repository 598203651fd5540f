"""Threshold rules turning analytics rollups into dashboard insights.

Each rule is independent: it looks at the rollup and the thresholds and
returns zero or more messages. ``generate_insights`` runs every rule and
orders the output by severity, keeping rule order inside a severity.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, List, Optional, Sequence

from loguru import logger

from craftguide.schemas.analytics import InsightThresholds, OnboardingAnalyticsData
from craftguide.schemas.enums import InsightSeverity

Evaluator = Callable[[OnboardingAnalyticsData, InsightThresholds], List[str]]

SEVERITY_RANK = {
    InsightSeverity.critical: 0,
    InsightSeverity.warning: 1,
    InsightSeverity.info: 2,
    InsightSeverity.positive: 3,
}


@dataclass(frozen=True)
class InsightRule:
    name: str
    severity: InsightSeverity
    evaluate: Evaluator


@dataclass(frozen=True)
class Insight:
    rule: str
    severity: InsightSeverity
    message: str


def _fmt(value: float) -> str:
    return f"{value:g}"


def _high_drop_off(data: OnboardingAnalyticsData, limits: InsightThresholds) -> List[str]:
    return [
        f'High drop-off at "{step.step_name}" ({_fmt(step.drop_off_rate)}%). This step needs attention.'
        for step in data.step_analytics
        if step.view_count and step.drop_off_rate > limits.high_drop_off
    ]


def _moderate_drop_off(data: OnboardingAnalyticsData, limits: InsightThresholds) -> List[str]:
    return [
        f'Moderate drop-off at "{step.step_name}" ({_fmt(step.drop_off_rate)}%). Consider clearer instructions.'
        for step in data.step_analytics
        if step.view_count and limits.moderate_drop_off < step.drop_off_rate <= limits.high_drop_off
    ]


def _low_completion(data: OnboardingAnalyticsData, limits: InsightThresholds) -> List[str]:
    rate = data.completion_stats.completion_rate
    if rate < limits.low_completion_rate:
        return [
            f"Project completion rate is {_fmt(rate)}%, below {_fmt(limits.low_completion_rate)}%. "
            "Consider simplifying the flow."
        ]
    return []


def _slow_first_project(data: OnboardingAnalyticsData, limits: InsightThresholds) -> List[str]:
    ttfp = data.time_to_first_project
    if ttfp.sample_size and ttfp.average_hours > limits.slow_first_project_hours:
        return [
            f"Users take {_fmt(ttfp.average_hours)}h on average to start their first project. "
            "Consider adding more guidance."
        ]
    return []


def _last_two_cohorts(data: OnboardingAnalyticsData):
    """The two most recent cohorts, only when they are consecutive weeks."""
    cohorts = data.cohort_analysis.cohorts
    if len(cohorts) < 2:
        return None
    previous, latest = cohorts[-2], cohorts[-1]
    gap = date.fromisoformat(latest.start_date) - date.fromisoformat(previous.start_date)
    if gap != timedelta(days=7):
        return None
    return previous, latest


def _completion_declined(data: OnboardingAnalyticsData, limits: InsightThresholds) -> List[str]:
    pair = _last_two_cohorts(data)
    if pair and pair[1].completion_rate < pair[0].completion_rate:
        previous, latest = pair
        return [
            f"Completion rate fell from {_fmt(previous.completion_rate)}% to "
            f"{_fmt(latest.completion_rate)}% week-over-week (cohort of {latest.start_date})."
        ]
    return []


def _high_skip_rate(data: OnboardingAnalyticsData, limits: InsightThresholds) -> List[str]:
    messages = []
    for step in data.step_analytics:
        if not step.view_count:
            continue
        skip_rate = round(step.skip_count / step.view_count * 100, 1)
        if skip_rate > limits.high_skip_rate:
            messages.append(
                f'"{step.step_name}" is skipped by {_fmt(skip_rate)}% of viewers. It may feel optional.'
            )
    return messages


def _excellent_completion(data: OnboardingAnalyticsData, limits: InsightThresholds) -> List[str]:
    rate = data.completion_stats.completion_rate
    if rate > limits.excellent_completion_rate:
        return [f"Excellent completion rate ({_fmt(rate)}%)! Users are finding the flow intuitive."]
    return []


def _completion_improved(data: OnboardingAnalyticsData, limits: InsightThresholds) -> List[str]:
    pair = _last_two_cohorts(data)
    if pair and pair[1].completion_rate > pair[0].completion_rate:
        previous, latest = pair
        return [
            f"Completion rate improved from {_fmt(previous.completion_rate)}% to "
            f"{_fmt(latest.completion_rate)}% week-over-week (cohort of {latest.start_date})."
        ]
    return []


DEFAULT_RULES: List[InsightRule] = [
    InsightRule("high_drop_off", InsightSeverity.critical, _high_drop_off),
    InsightRule("moderate_drop_off", InsightSeverity.warning, _moderate_drop_off),
    InsightRule("low_completion", InsightSeverity.warning, _low_completion),
    InsightRule("slow_first_project", InsightSeverity.warning, _slow_first_project),
    InsightRule("completion_declined", InsightSeverity.warning, _completion_declined),
    InsightRule("high_skip_rate", InsightSeverity.info, _high_skip_rate),
    InsightRule("excellent_completion", InsightSeverity.positive, _excellent_completion),
    InsightRule("completion_improved", InsightSeverity.positive, _completion_improved),
]


def evaluate_rules(
    data: OnboardingAnalyticsData,
    thresholds: InsightThresholds,
    rules: Optional[Sequence[InsightRule]] = None,
) -> List[Insight]:
    if data.total_users < max(thresholds.min_users, 1):
        return []

    fired: List[tuple[int, int, Insight]] = []
    for order, rule in enumerate(rules if rules is not None else DEFAULT_RULES):
        for message in rule.evaluate(data, thresholds):
            fired.append((SEVERITY_RANK[rule.severity], order, Insight(rule.name, rule.severity, message)))

    fired.sort(key=lambda item: (item[0], item[1]))
    return [insight for _, _, insight in fired]


def generate_insights(
    data: OnboardingAnalyticsData,
    thresholds: Optional[InsightThresholds] = None,
    rules: Optional[Sequence[InsightRule]] = None,
) -> List[str]:
    insights = evaluate_rules(data, thresholds or InsightThresholds(), rules)
    logger.debug(f"Insights generated | fired={[i.rule for i in insights]}")
    return [insight.message for insight in insights]


__all__ = [
    "DEFAULT_RULES",
    "Insight",
    "InsightRule",
    "evaluate_rules",
    "generate_insights",
]
