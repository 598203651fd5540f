"""
Pytest configuration and shared fixtures.

- throwaway sqlite store per test
- small deterministic template catalog
- manually advanced clock
"""

from datetime import datetime, timedelta

import pytest

from craftguide.core.db import build_engine, build_session_factory
from craftguide.core.init_db import init_db
from craftguide.schemas.enums import CraftType, Difficulty, EventKind, SkillLevel
from craftguide.schemas.templates import ProjectStep, ProjectTemplate
from craftguide.services.analytics import AnalyticsEngine
from craftguide.services.catalog import StaticTemplateCatalog
from craftguide.services.event_store import EventRecord, SqlAlchemyEventStore
from craftguide.services.guidance import GuidanceService


# ============================================================
# Clock
# ============================================================

class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    # a Wednesday
    return FakeClock(datetime(2024, 3, 6, 9, 0, 0))


# ============================================================
# Catalog
# ============================================================

def make_step(step_id: str, title: str) -> ProjectStep:
    return ProjectStep(id=step_id, title=title, description=f"{title} step", estimated_minutes=10)


def make_template(template_id: str, name: str, steps, **kwargs) -> ProjectTemplate:
    defaults = dict(
        description=f"{name} project",
        craft_type=CraftType.woodworking,
        skill_level=SkillLevel.novice,
        difficulty=Difficulty.beginner,
        estimated_minutes=10 * len(steps),
    )
    defaults.update(kwargs)
    return ProjectTemplate(id=template_id, name=name, steps=steps, **defaults)


@pytest.fixture
def woodworking_template() -> ProjectTemplate:
    return make_template(
        "basic-woodworking",
        "Basic Woodworking",
        [
            make_step("s1", "Measure"),
            make_step("s2", "Cut"),
            make_step("s3", "Sand"),
            make_step("s4", "Assemble"),
            make_step("s5", "Finish"),
        ],
        is_popular=True,
        completion_rate=80,
    )


@pytest.fixture
def leather_template() -> ProjectTemplate:
    return make_template(
        "leather-strap",
        "Leather Strap",
        [make_step("s1", "Cut Strap"), make_step("s2", "Stitch")],
        craft_type=CraftType.leathercraft,
        completion_rate=60,
    )


@pytest.fixture
def catalog(woodworking_template, leather_template) -> StaticTemplateCatalog:
    return StaticTemplateCatalog([woodworking_template, leather_template])


# ============================================================
# Store / services
# ============================================================

@pytest.fixture
def engine(tmp_path):
    bound = build_engine(f"sqlite:///{tmp_path / 'craftguide-test.db'}")
    init_db(bound)
    yield bound
    bound.dispose()


@pytest.fixture
def store(engine) -> SqlAlchemyEventStore:
    return SqlAlchemyEventStore(build_session_factory(engine))


@pytest.fixture
def guidance(catalog, store, clock) -> GuidanceService:
    return GuidanceService(catalog, store, clock=clock)


@pytest.fixture
def analytics(catalog, store) -> AnalyticsEngine:
    return AnalyticsEngine(catalog, store, read_timeout_seconds=5)


@pytest.fixture
def record():
    """Builder for raw event records."""

    def _record(user_id, kind, at, template_id="basic-woodworking", step_id=None, **metadata):
        return EventRecord(
            user_id=user_id,
            kind=EventKind(kind) if kind else None,
            occurred_at=at,
            template_id=template_id,
            step_id=step_id,
            metadata=metadata,
        )

    return _record
