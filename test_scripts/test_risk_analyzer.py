"""Warnings and bottlenecks derived from an evaluated plan."""
from datetime import datetime

import pytest

from conftest import build_problem, make_request
from allocation_engine.schemas.domain import Resource, ResourceType, SkillLevel, Task
from allocation_engine.schemas.request import OptimizationRequest
from allocation_engine.services.analysis import RiskAnalyzer, bottleneck_severity
from allocation_engine.services.optimization import evaluate
from allocation_engine.services.scheduling import ScheduleBuilder

# Seeded plan cost: T1 26.88h*50 + T2 26.88h*50 + T3 4.32h*40
SEEDED_COST = 2860.8


def analyze(test_settings, tasks=None, resources=None, genes=None, **request_overrides):
    request = OptimizationRequest.model_validate(make_request(**request_overrides))
    problem = build_problem(tasks=tasks, resources=resources, **request_overrides)
    resource_genes, fraction_genes = genes or problem.seeded_genes()
    evaluation = evaluate(problem, resource_genes, fraction_genes)
    plan = ScheduleBuilder(problem).build(evaluation, plan_id="p")
    analyzer = RiskAnalyzer(problem, request, test_settings)
    return evaluation, analyzer.warnings(evaluation, plan), analyzer.bottlenecks(evaluation)


def by_category(warnings, category):
    return [w for w in warnings if w.category == category]


def test_clean_plan_has_no_warnings(test_settings):
    evaluation, warnings, bottlenecks = analyze(test_settings)
    assert evaluation.total_cost == pytest.approx(SEEDED_COST)
    assert warnings == []
    assert bottlenecks == []


def test_budget_close_to_limit_is_high(test_settings):
    _, warnings, _ = analyze(test_settings, constraints={"budget_limit": 2900})
    budget = by_category(warnings, "budget_overrun")
    assert len(budget) == 1
    assert budget[0].severity == "high"
    assert budget[0].warning_id == "warn_req-001_001"


def test_budget_exceeded_is_critical(test_settings):
    _, warnings, _ = analyze(test_settings, constraints={"budget_limit": 2800})
    budget = by_category(warnings, "budget_overrun")
    assert budget[0].severity == "critical"
    assert budget[0].cost_impact == pytest.approx(60.8)


def test_deadline_breaches(test_settings):
    _, warnings, _ = analyze(test_settings, constraints={"deadline": "2026-06-03T16:00:00"})
    late = by_category(warnings, "schedule_delay")
    assert sorted(w.affected_task_ids[0] for w in late) == ["T1", "T2"]
    assert all(w.severity == "high" for w in late)
    t1 = next(w for w in late if w.affected_task_ids == ["T1"])
    assert t1.time_impact_hours == pytest.approx(2.88)


def test_missing_safety_certification_is_critical(test_settings, resources):
    certified = resources[1].model_copy(update={"certifications": ["fall-protection"]})
    _, warnings, _ = analyze(
        test_settings,
        resources=[resources[0], certified],
        constraints={"safety_requirements": ["fall-protection"]},
    )
    safety = by_category(warnings, "safety_concern")
    assert {w.affected_task_ids[0] for w in safety} == {"T1", "T2"}
    assert all(w.severity == "critical" and w.affected_resource_ids == ["R1"] for w in safety)


def test_unassigned_task_warning(test_settings, tasks):
    extra = Task(task_id="T4", project_id="P1", required_skills=["plumbing"], base_duration_hours=6)
    _, warnings, _ = analyze(test_settings, tasks=tasks + [extra])
    unassigned = by_category(warnings, "unassigned_task")
    assert len(unassigned) == 1
    assert unassigned[0].severity == "critical"
    assert unassigned[0].affected_task_ids == ["T4"]


def test_low_success_probability_is_quality_risk(test_settings, tasks):
    novice = Resource(
        resource_id="R5",
        capabilities=[SkillLevel(skill="carpentry", proficiency=2)],
        cost_rate=20,
        historical_delay_rate=1.0,
        historical_overrun_rate=1.0,
    )
    _, warnings, _ = analyze(test_settings, tasks=[tasks[0]], resources=[novice])
    quality = by_category(warnings, "quality_risk")
    assert len(quality) == 1
    assert quality[0].severity == "medium"


def test_mandatory_resource_checks(test_settings, resources):
    spare = Resource(resource_id="R7", capabilities=[SkillLevel(skill="painting", proficiency=3)], cost_rate=30)
    _, warnings, _ = analyze(
        test_settings,
        resources=resources + [spare],
        constraints={"mandatory_resources": ["R7", "R99"]},
    )
    conflicts = {w.affected_resource_ids[0]: w for w in by_category(warnings, "resource_conflict")}
    assert conflicts["R7"].severity == "low"
    assert conflicts["R99"].severity == "medium"


def _stacked_equipment():
    tasks = [
        Task(task_id=f"DIG{i}", project_id="P1", resource_type=ResourceType.EQUIPMENT, base_duration_hours=8)
        for i in range(2)
    ]
    excavator = Resource(resource_id="E1", resource_type=ResourceType.EQUIPMENT, cost_rate=100, condition=3)
    return tasks, [excavator]


def test_overtime_overload_creates_bottleneck(test_settings):
    tasks, resources = _stacked_equipment()
    evaluation, warnings, bottlenecks = analyze(
        test_settings,
        tasks=tasks,
        resources=resources,
        genes=([0, 0], [1.0, 1.0]),
        preferences={"allow_overtime": True},
    )
    # each dig takes 8h * 1.28 and both start at offset 0
    assert [pl.start for pl in evaluation.placements] == [0.0, 0.0]

    conflict = by_category(warnings, "resource_conflict")
    assert len(conflict) == 1
    assert conflict[0].severity == "medium"
    assert conflict[0].cost_impact == pytest.approx(1200.0)

    assert len(bottlenecks) == 1
    bn = bottlenecks[0]
    assert bn.bottleneck_id == "bn_req-001_001"
    assert bn.resource_type == ResourceType.EQUIPMENT
    assert bn.period_start == datetime(2026, 6, 1, 8, 0)
    assert bn.period_end == datetime(2026, 6, 1, 16, 0)
    assert bn.demand_hours == pytest.approx(16.0)
    assert bn.capacity_hours == pytest.approx(8.0)
    assert bn.shortfall_pct == pytest.approx(100.0)
    assert bn.severity == "critical"
    assert bn.estimated_delay_hours == pytest.approx(16.0)
    assert bn.estimated_cost_impact == pytest.approx(1200.0)
    assert bn.affected_task_ids == ["DIG0", "DIG1"]
    assert bn.affected_resource_ids == ["E1"]


def _part_timer():
    task = Task(
        task_id="PANEL",
        project_id="P1",
        required_skills=["carpentry"],
        min_proficiency=2,
        base_duration_hours=16,
        complexity=5,
        site_accessibility=5,
    )
    carpenter = Resource(
        resource_id="R1",
        capabilities=[SkillLevel(skill="carpentry", proficiency=4, years_experience=10)],
        cost_rate=50,
        capacity_per_day=4,
    )
    return [task], [carpenter]


def test_part_time_resource_stays_within_daily_capacity(test_settings):
    tasks, resources = _part_timer()
    problem = build_problem(tasks=tasks, resources=resources)
    evaluation = evaluate(problem, [0], [1.0])
    (ru,) = ScheduleBuilder(problem).build(evaluation, plan_id="p").resource_utilization
    assert max(b.allocated_hours for b in ru.timeline) <= 4.0 + 1e-6
    assert ru.overtime_hours == 0.0

    evaluation, warnings, bottlenecks = analyze(test_settings, tasks=tasks, resources=resources, genes=([0], [1.0]))
    assert evaluation.placements[0].fraction == pytest.approx(0.5)
    assert by_category(warnings, "resource_conflict") == []
    assert bottlenecks == []


def test_hours_beyond_daily_capacity_are_a_conflict(test_settings):
    tasks, resources = _part_timer()
    overrides = {"preferences": {"allow_overtime": True}}
    problem = build_problem(tasks=tasks, resources=resources, **overrides)
    evaluation = evaluate(problem, [0], [1.0])
    (ru,) = ScheduleBuilder(problem).build(evaluation, plan_id="p").resource_utilization
    assert ru.overtime_hours > 0

    _, warnings, bottlenecks = analyze(test_settings, tasks=tasks, resources=resources, genes=([0], [1.0]), **overrides)
    (conflict,) = by_category(warnings, "resource_conflict")
    assert conflict.severity == "medium"
    assert "4.0 h/day capacity" in conflict.message
    assert conflict.affected_task_ids == ["PANEL"]
    assert conflict.cost_impact == pytest.approx(round(ru.overtime_hours * 50 * 1.5, 2))
    assert len(bottlenecks) >= 1


def test_missing_resource_type_is_a_bottleneck(test_settings, tasks):
    crane = Task(task_id="LIFT", project_id="P1", resource_type=ResourceType.EQUIPMENT, base_duration_hours=4)
    _, _, bottlenecks = analyze(test_settings, tasks=tasks + [crane])
    equipment = [b for b in bottlenecks if b.resource_type == ResourceType.EQUIPMENT]
    assert len(equipment) == 1
    assert equipment[0].capacity_hours == 0.0
    assert equipment[0].demand_hours == pytest.approx(8.0)
    assert equipment[0].estimated_delay_hours == pytest.approx(8.0)
    assert any("No equipment resource" in r for r in equipment[0].recommendations)


@pytest.mark.parametrize(
    "shortfall,expected",
    [(5.0, "low"), (10.0, "medium"), (24.9, "medium"), (25.0, "high"), (49.9, "high"), (50.0, "critical")],
)
def test_bottleneck_severity(shortfall, expected):
    assert bottleneck_severity(shortfall) == expected
