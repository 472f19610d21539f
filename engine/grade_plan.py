"""
Grade projection engine — pure logic, no external dependencies.

Turns one course's category/assignment tree into the current grade, the
projected grade and the points still needed on each ungraded assignment to
reach the desired letter.
"""

from dataclasses import dataclass, field

from engine.models import (
    DEFAULT_TARGET_PERCENT,
    LETTER_TO_PERCENT,
    POINTS,
    AssignmentRequirement,
    CategoryPlan,
    CoursePlanInput,
    CoursePlanResult,
)

UNATTAINABLE_REASON = "Target grade unattainable with remaining max points."
NO_REMAINING_REASON = "No remaining assignments to cover the target."

# Float noise guard when comparing needed points against remaining capacity.
_EPSILON = 1e-9


def target_percent_for(letter) -> float:
    """Target fraction for a desired letter; unknown or missing letters aim for an A."""
    if not letter:
        return DEFAULT_TARGET_PERCENT
    return LETTER_TO_PERCENT.get(str(letter).strip().upper(), DEFAULT_TARGET_PERCENT)


def get_letter_grade(percent) -> str | None:
    """Map a 0-1 fraction to a letter using the target table as minimum thresholds."""
    if percent is None:
        return None

    thresholds = sorted(LETTER_TO_PERCENT.items(), key=lambda x: x[1], reverse=True)
    for letter, min_pct in thresholds:
        if percent >= min_pct:
            return letter

    return "F"


@dataclass
class ScoredAssignment:
    assignment: object
    score: float
    index: int        # position in the category, used as the tie-break

    @property
    def ratio(self) -> float:
        max_points = self.assignment.max_points
        return self.score / max_points if max_points else 0

    @property
    def earned(self) -> float:
        """Score counted toward totals: capped at max unless the work is extra credit."""
        if self.assignment.is_extra_credit:
            return self.score
        return min(self.score, self.assignment.max_points)


def apply_drop_lowest(scored: list, drop_lowest: int) -> tuple[list, list]:
    """
    Remove the `drop_lowest` lowest scores (by score / max) from a score set.

    Equal ratios are broken by input order, so the earlier assignment is the
    one dropped. Returns (kept, dropped), each in input order.
    """
    if drop_lowest <= 0 or not scored:
        return list(scored), []

    ranked = sorted(scored, key=lambda s: (s.ratio, s.index))
    dropped_idx = {s.index for s in ranked[:drop_lowest]}
    kept = [s for s in scored if s.index not in dropped_idx]
    dropped = [s for s in scored if s.index in dropped_idx]
    return kept, dropped


def _earned_sum(items: list) -> float:
    return sum(s.earned for s in items)


def _max_sum(items: list, include_extra_credit: bool = True) -> float:
    return sum(
        s.assignment.max_points
        for s in items
        if include_extra_credit or not s.assignment.is_extra_credit
    )


def _percent(earned: float, possible: float):
    return earned / possible if possible > 0 else None


@dataclass
class CategoryTally:
    """Drop-adjusted actual and projected score sets for one category."""
    category: object
    actual_kept: list
    projected_kept: list
    projected_dropped: list

    @property
    def actual_percent(self):
        return _percent(_earned_sum(self.actual_kept), _max_sum(self.actual_kept))

    @property
    def projected_percent(self):
        return _percent(_earned_sum(self.projected_kept), _max_sum(self.projected_kept))


def tally_category(category) -> CategoryTally:
    """
    Build both score sets for a category.

    Actual set: graded work only. Projected set: every assignment, with
    ungraded work scored at its forecast, or at full credit when no
    forecast exists. Drops are applied to each set independently.
    """
    actual = []
    projected = []
    for index, a in enumerate(category.assignments):
        if a.graded:
            actual.append(ScoredAssignment(a, a.earned_points, index))
            projected.append(ScoredAssignment(a, a.earned_points, index))
        else:
            score = a.expected_points if a.expected_points is not None else a.max_points
            projected.append(ScoredAssignment(a, score, index))

    actual_kept, _ = apply_drop_lowest(actual, category.drop_lowest)
    projected_kept, projected_dropped = apply_drop_lowest(projected, category.drop_lowest)
    return CategoryTally(category, actual_kept, projected_kept, projected_dropped)


def distribute_requirements(kept: list, target_percent: float,
                            include_extra_credit: bool = True) -> tuple[list, str | None]:
    """
    Spread the points still needed over the kept ungraded assignments.

    Each remaining assignment is asked for the same fraction of its max,
    capped at its max. Without `include_extra_credit`, extra-credit max
    points stay out of both the target and the remaining pool and extra
    credit work is asked for nothing. Returns (requirements, reason) where
    reason is set when the target can no longer be reached.
    """
    remaining = [s for s in kept if not s.assignment.graded]
    earned_so_far = _earned_sum([s for s in kept if s.assignment.graded])
    target_points = target_percent * _max_sum(kept, include_extra_credit)
    needed = max(0.0, target_points - earned_so_far)
    remaining_max = _max_sum(remaining, include_extra_credit)
    has_extra_credit = any(s.assignment.is_extra_credit for s in remaining)

    requirements = []
    reason = None
    if remaining and (remaining_max > 0 or (has_extra_credit and not include_extra_credit)):
        if needed - remaining_max > _EPSILON and not has_extra_credit:
            reason = UNATTAINABLE_REASON
        scale = needed / remaining_max if remaining_max > 0 else 0.0
        for a in (s.assignment for s in remaining):
            if a.is_extra_credit and not include_extra_credit:
                required = 0.0
            else:
                required = min(a.max_points, a.max_points * scale)
            requirements.append(
                AssignmentRequirement(
                    id=a.id,
                    name=a.name,
                    max_points=a.max_points,
                    required_points=round(required, 2),
                )
            )
    elif needed > _EPSILON:
        reason = NO_REMAINING_REASON

    return requirements, reason


@dataclass
class Aggregate:
    actual_percent: float | None
    projected_percent: float | None
    covered_weight: float
    remaining_weight: float
    weights: list
    requirements: list = field(default_factory=list)
    reason: str | None = None


class WeightedAggregation:
    """Course grade as the weight-normalized average of category percentages."""

    def aggregate(self, tallies: list, target_percent: float) -> Aggregate:
        total_weight = sum(max(t.category.weight_percent, 0) for t in tallies) or 1
        weights = [max(t.category.weight_percent, 0) / total_weight for t in tallies]

        weighted_actual = 0.0
        weighted_projected = 0.0
        covered_weight = 0.0
        requirements = []
        reason = None

        for weight, tally in zip(weights, tallies):
            actual = tally.actual_percent
            projected = tally.projected_percent
            if actual is not None:
                weighted_actual += weight * actual
                covered_weight += weight
            if projected is not None:
                weighted_projected += weight * projected

            cat_requirements, cat_reason = distribute_requirements(tally.projected_kept, target_percent)
            requirements.extend(cat_requirements)
            reason = reason or cat_reason

        return Aggregate(
            actual_percent=weighted_actual / covered_weight if covered_weight > 0 else None,
            projected_percent=weighted_projected,
            covered_weight=covered_weight,
            remaining_weight=1 - covered_weight,
            weights=weights,
            requirements=requirements,
            reason=reason,
        )


class PointsAggregation:
    """
    Course grade as total kept points earned over total kept points possible.

    Extra-credit max points never count as points possible.
    """

    def aggregate(self, tallies: list, target_percent: float) -> Aggregate:
        actual_kept = [s for t in tallies for s in t.actual_kept]
        projected_kept = [s for t in tallies for s in t.projected_kept]

        actual_max = _max_sum(actual_kept, include_extra_credit=False)
        projected_max = _max_sum(projected_kept, include_extra_credit=False)

        # Category weight is its share of the kept points.
        if projected_max > 0:
            weights = [_max_sum(t.projected_kept, include_extra_credit=False) / projected_max for t in tallies]
        else:
            weights = [0.0 for _ in tallies]

        requirements, reason = distribute_requirements(projected_kept, target_percent, include_extra_credit=False)

        return Aggregate(
            actual_percent=_percent(_earned_sum(actual_kept), actual_max),
            projected_percent=_percent(_earned_sum(projected_kept), projected_max),
            covered_weight=1.0 if actual_max > 0 else 0.0,
            remaining_weight=0.0,
            weights=weights,
            requirements=requirements,
            reason=reason,
        )


def aggregation_for(grading_method):
    if str(grading_method or "").upper() == POINTS:
        return PointsAggregation()
    return WeightedAggregation()


def compute_course_plan(course: CoursePlanInput) -> CoursePlanResult:
    """
    Compute the grade plan for one course.

    Returns actual and projected percentages (0-1 fractions), a per-category
    breakdown, achievability of the desired letter and the required points
    for every remaining assignment.
    """
    target_percent = target_percent_for(course.desired_letter_grade)
    tallies = [tally_category(c) for c in course.categories]
    agg = aggregation_for(course.grading_method).aggregate(tallies, target_percent)

    categories = [
        CategoryPlan(
            id=t.category.id,
            name=t.category.name,
            weight=weight,
            actual_percent=t.actual_percent,
            projected_percent=t.projected_percent,
        )
        for weight, t in zip(agg.weights, tallies)
    ]

    return CoursePlanResult(
        target_percent=target_percent,
        actual_percent=agg.actual_percent,
        projected_percent=agg.projected_percent,
        achievable=agg.reason is None,
        reason=agg.reason,
        covered_weight=agg.covered_weight,
        remaining_weight=agg.remaining_weight,
        categories=categories,
        requirements=agg.requirements,
        dropped_assignment_ids=[s.assignment.id for t in tallies for s in t.projected_dropped],
    )
