"""Feature extraction for (task, resource) pairings."""
from datetime import date, datetime

import pytest

from allocation_engine.schemas.domain import Resource, ResourceType, SkillLevel, Task
from allocation_engine.services.features import FEATURE_NAMES, ExtractionContext, FeatureExtractor
from allocation_engine.services.features.extractor import seasonal_indicator


@pytest.fixture
def extractor() -> FeatureExtractor:
    return FeatureExtractor()


@pytest.fixture
def context() -> ExtractionContext:
    return ExtractionContext(reference_date=date(2026, 6, 1))


def test_qualified_labor_pairing(extractor, context, tasks, resources):
    fv = extractor.extract(tasks[0], resources[0], context)
    assert not fv.is_unqualified
    assert fv.proficiency == pytest.approx(0.8)
    assert fv.experience == pytest.approx(0.5)
    assert fv.task_complexity == pytest.approx(0.5)
    assert fv.site_accessibility == pytest.approx(1.0)
    assert fv.equipment_condition == 1.0
    assert fv.seasonal_indicator == 0.0
    assert fv.historical_delay_rate == pytest.approx(0.1)
    assert fv.task_duration == pytest.approx(24 / 160)


def test_missing_skill_is_unqualified(extractor, context, tasks, resources):
    # R1 has no electrical skill
    fv = extractor.extract(tasks[2], resources[0], context)
    assert fv.is_unqualified
    assert fv.proficiency == 0.0


def test_min_proficiency_enforced(extractor, context, resources):
    task = Task(task_id="TX", required_skills=["framing"], min_proficiency=4, base_duration_hours=8)
    assert extractor.is_qualified(task, resources[0], context)
    assert not extractor.is_qualified(task, resources[1], context)


def test_resource_type_mismatch_is_unqualified(extractor, context, tasks):
    excavator = Resource(resource_id="E1", resource_type=ResourceType.EQUIPMENT, cost_rate=120, condition=4)
    assert extractor.extract(tasks[0], excavator, context).is_unqualified


def test_constraint_skills_apply_to_every_task(extractor, tasks, resources):
    ctx = ExtractionContext(reference_date=date(2026, 6, 1), extra_required_skills=("electrical",))
    assert extractor.required_skills(tasks[0], ctx) == ["carpentry", "electrical"]
    assert extractor.extract(tasks[0], resources[0], ctx).is_unqualified


def test_equipment_condition(extractor, context):
    task = Task(task_id="DIG", resource_type=ResourceType.EQUIPMENT, base_duration_hours=16)
    good = Resource(resource_id="E1", resource_type=ResourceType.EQUIPMENT, cost_rate=100, condition=5)
    unknown = Resource(resource_id="E2", resource_type=ResourceType.EQUIPMENT, cost_rate=100)
    assert extractor.extract(task, good, context).equipment_condition == pytest.approx(1.0)
    assert extractor.extract(task, unknown, context).equipment_condition == pytest.approx(0.6)
    # No required skills and no capabilities -> neutral proficiency
    assert extractor.extract(task, unknown, context).proficiency == pytest.approx(0.6)


def test_season_follows_task_start(extractor, context, resources):
    winter_task = Task(
        task_id="TW",
        required_skills=["carpentry"],
        base_duration_hours=8,
        earliest_start=datetime(2027, 1, 11, 8, 0),
    )
    assert extractor.extract(winter_task, resources[0], context).seasonal_indicator == 1.0
    assert seasonal_indicator(date(2026, 4, 1)) == 0.25
    assert seasonal_indicator(date(2026, 10, 1)) == 0.5


def test_long_tasks_cap_duration_feature(extractor, context, resources):
    task = Task(task_id="BIG", required_skills=["carpentry"], base_duration_hours=400)
    assert extractor.extract(task, resources[0], context).task_duration == 1.0


def test_vector_order_matches_feature_names(extractor, context, tasks, resources):
    fv = extractor.extract(tasks[0], resources[0], context)
    values = fv.as_tuple()
    assert len(values) == len(FEATURE_NAMES)
    assert values[FEATURE_NAMES.index("proficiency")] == fv.proficiency
    assert values[-1] == 0.0
    assert all(0.0 <= v <= 1.0 for v in values)


def test_skill_level_bounds():
    with pytest.raises(ValueError):
        SkillLevel(skill="carpentry", proficiency=6)
