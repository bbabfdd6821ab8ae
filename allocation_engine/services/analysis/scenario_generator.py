# allocation_engine/services/analysis/scenario_generator.py
"""
Scenario Generator: labeled cost/time trade-offs derived from the baseline plan.

Scenarios are not re-optimized. Each one applies a fixed cost delta and
duration delta to the baseline: allocation offsets are stretched by
(1 + duration delta) and costs scaled by (1 + cost delta), so the derived
allocations sum back to the scenario's declared totals.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from allocation_engine.config import Settings
from allocation_engine.schemas.request import OptimizationGoal, Preferences
from allocation_engine.schemas.result import Allocation, Scenario
from allocation_engine.utils.calendar import WorkingCalendar


@dataclass(frozen=True)
class ScenarioTemplate:
    key: str
    label: str
    description: str
    cost_delta_pct: float  # fraction of baseline, e.g. -0.15
    duration_delta_pct: float
    favours: OptimizationGoal
    extra_pros: Sequence[str] = ()
    extra_cons: Sequence[str] = ()


def templates_from_settings(settings: Settings) -> List[ScenarioTemplate]:
    return [
        ScenarioTemplate(
            key="cost_optimized",
            label="Cost Optimized",
            description="Minimize costs with a slightly longer duration",
            cost_delta_pct=settings.SCENARIO_COST_OPTIMIZED_COST_DELTA,
            duration_delta_pct=settings.SCENARIO_COST_OPTIMIZED_DURATION_DELTA,
            favours=OptimizationGoal.MINIMIZE_COST,
            extra_pros=("Higher resource utilization",),
            extra_cons=("Slightly lower quality",),
        ),
        ScenarioTemplate(
            key="time_optimized",
            label="Time Optimized",
            description="Minimize duration with higher costs",
            cost_delta_pct=settings.SCENARIO_TIME_OPTIMIZED_COST_DELTA,
            duration_delta_pct=settings.SCENARIO_TIME_OPTIMIZED_DURATION_DELTA,
            favours=OptimizationGoal.MINIMIZE_DURATION,
            extra_pros=("Higher quality",),
            extra_cons=("More resource conflicts",),
        ),
    ]


def _delta_phrase(pct: float, lower: str, higher: str) -> str:
    return f"{abs(pct):.0%} {lower if pct < 0 else higher}"


class ScenarioGenerator:
    def __init__(self, calendar: WorkingCalendar, templates: Sequence[ScenarioTemplate]) -> None:
        self.calendar = calendar
        self.templates = list(templates)

    def generate(
        self,
        request_id: str,
        baseline_cost: float,
        baseline_duration_hours: float,
        allocations: Sequence[Allocation],
        goal: OptimizationGoal,
        preferences: Preferences,
    ) -> List[Scenario]:
        pairs = [
            (t, self._derive(request_id, t, baseline_cost, baseline_duration_hours, allocations, preferences))
            for t in self.templates
        ]
        # Scenario favouring the requested goal first, then by score.
        pairs.sort(key=lambda p: (p[0].favours != goal, -p[1].recommendation_score))
        return [scenario for _, scenario in pairs]

    def _derive(
        self,
        request_id: str,
        template: ScenarioTemplate,
        baseline_cost: float,
        baseline_duration: float,
        allocations: Sequence[Allocation],
        preferences: Preferences,
    ) -> Scenario:
        cost_factor = 1.0 + template.cost_delta_pct
        time_factor = 1.0 + template.duration_delta_pct
        cost_delta = baseline_cost * template.cost_delta_pct
        duration_delta = baseline_duration * template.duration_delta_pct

        derived: List[Allocation] = []
        for a in allocations:
            start = a.start_offset_hours * time_factor
            end = a.end_offset_hours * time_factor
            derived.append(
                a.model_copy(
                    update={
                        "start": self.calendar.to_datetime(start),
                        "end": self.calendar.to_datetime(end, is_end=True),
                        "start_offset_hours": round(start, 4),
                        "end_offset_hours": round(end, 4),
                        "duration_hours": round(a.duration_hours * time_factor, 4),
                        "estimated_cost": round(a.estimated_cost * cost_factor, 2),
                    }
                )
            )

        pros: List[str] = []
        cons: List[str] = []
        cost_text = _delta_phrase(template.cost_delta_pct, "cost reduction", "higher costs")
        time_text = _delta_phrase(template.duration_delta_pct, "faster completion", "longer duration")
        (pros if template.cost_delta_pct < 0 else cons).append(cost_text)
        (pros if template.duration_delta_pct < 0 else cons).append(time_text)
        pros.extend(template.extra_pros)
        cons.extend(template.extra_cons)

        weight_total = preferences.cost_weight + preferences.time_weight
        if weight_total > 0:
            gain = (
                preferences.cost_weight * -template.cost_delta_pct
                + preferences.time_weight * -template.duration_delta_pct
            ) / weight_total
        else:
            gain = 0.0
        score = max(0.0, min(1.0, 0.5 + gain))

        return Scenario(
            scenario_id=f"{request_id}:{template.key}",
            label=template.label,
            description=template.description,
            baseline_cost=round(baseline_cost, 2),
            baseline_duration_hours=round(baseline_duration, 4),
            cost_delta=round(cost_delta, 2),
            duration_delta_hours=round(duration_delta, 4),
            cost_delta_pct=round(template.cost_delta_pct * 100.0, 2),
            duration_delta_pct=round(template.duration_delta_pct * 100.0, 2),
            total_cost=round(baseline_cost + cost_delta, 2),
            total_duration_hours=round(baseline_duration + duration_delta, 4),
            pros=pros,
            cons=cons,
            allocations=derived,
            recommendation_score=round(score, 4),
        )


__all__ = ["ScenarioTemplate", "ScenarioGenerator", "templates_from_settings"]
