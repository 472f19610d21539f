import pytest

from engine.grade_plan import (
    NO_REMAINING_REASON,
    UNATTAINABLE_REASON,
    ScoredAssignment,
    apply_drop_lowest,
    compute_course_plan,
    get_letter_grade,
    target_percent_for,
)
from engine.models import POINTS, WEIGHTED, AssignmentInput, CategoryInput, CoursePlanInput


# ── Helpers ───────────────────────────────────────────────────────────────────

def asg(id, max_points=100, earned=None, expected=None, extra=False):
    return AssignmentInput(
        id=id,
        name=id.upper(),
        max_points=max_points,
        is_extra_credit=extra,
        is_graded=earned is not None,
        earned_points=earned,
        expected_points=expected,
    )


def cat(id, assignments, weight=100, drop=0):
    return CategoryInput(id=id, name=id.title(), weight_percent=weight, drop_lowest=drop, assignments=assignments)


def course(*categories, desired="A", method=WEIGHTED):
    return CoursePlanInput(
        id="course1",
        name="Test",
        desired_letter_grade=desired,
        grading_method=method,
        categories=list(categories),
    )


def required(result):
    return {r.id: r.required_points for r in result.requirements}


# ── Requirements ──────────────────────────────────────────────────────────────

class TestRequirements:
    def test_distributes_required_points_across_ungraded(self):
        result = compute_course_plan(course(cat("main", [asg("a1"), asg("a2")])))
        assert result.achievable is True
        assert result.reason is None
        assert required(result)["a1"] == pytest.approx(90.0, abs=0.01)
        assert required(result)["a2"] == pytest.approx(90.0, abs=0.01)

    def test_unattainable_when_needed_exceeds_remaining_max(self):
        result = compute_course_plan(course(cat("main", [asg("a1", earned=50), asg("a2")])))
        assert result.achievable is False
        assert result.reason == UNATTAINABLE_REASON
        # Capped at the assignment's max
        assert required(result)["a2"] == 100

    def test_over_achievement_lowers_requirement(self):
        result = compute_course_plan(course(cat("main", [asg("a1", earned=100), asg("a2")])))
        assert required(result)["a2"] == pytest.approx(80.0)

    def test_requirement_exactly_at_max_is_achievable(self):
        result = compute_course_plan(course(cat("main", [asg("a1", earned=80), asg("a2")])))
        assert result.achievable is True
        assert required(result)["a2"] == pytest.approx(100.0)

    def test_requirement_one_point_over_max_is_not(self):
        result = compute_course_plan(course(cat("main", [asg("a1", earned=79), asg("a2")])))
        assert result.achievable is False

    def test_no_remaining_assignments_to_cover_target(self):
        # The forecast 60% is dropped, leaving only graded work below 90%.
        result = compute_course_plan(
            course(cat("main", [asg("a1", earned=80), asg("a2", expected=60)], drop=1))
        )
        assert result.achievable is False
        assert result.reason == NO_REMAINING_REASON
        assert result.requirements == []

    def test_extra_credit_remaining_keeps_target_open(self):
        result = compute_course_plan(
            course(cat("main", [asg("a1", earned=0), asg("bonus", extra=True)]))
        )
        assert result.achievable is True
        assert required(result)["bonus"] == 100

    def test_requirements_rounded_to_two_decimals(self):
        result = compute_course_plan(course(cat("main", [asg("a1", earned=70), asg("a2", 30)])))
        # needed = 0.9 * 130 - 70 = 47 over 30 remaining -> capped at 30
        assert required(result)["a2"] == 30
        result = compute_course_plan(course(cat("main", [asg("a1", 3), asg("a2", 3), asg("a3", 3)]), desired="C"))
        assert required(result)["a1"] == 2.1

    def test_first_reason_is_kept(self):
        result = compute_course_plan(
            course(
                cat("hw", [asg("h1", earned=0), asg("h2")], weight=50),
                cat("exam", [asg("e1", earned=10)], weight=50),
            )
        )
        assert result.achievable is False
        assert result.reason == UNATTAINABLE_REASON


# ── Drop lowest ───────────────────────────────────────────────────────────────

class TestDropLowest:
    def test_equal_ratio_drops_first_listed(self):
        result = compute_course_plan(
            course(cat("main", [asg("a1", 45, earned=45), asg("a2", 50, earned=50)], drop=1))
        )
        assert result.dropped_assignment_ids == ["a1"]
        assert result.actual_percent == pytest.approx(1.0)

    def test_dropped_ungraded_gets_no_requirement(self):
        result = compute_course_plan(course(cat("main", [asg("a1", 50), asg("a2", 100)], drop=1)))
        assert len(result.requirements) == 1
        assert result.requirements[0].id == "a2"
        assert result.requirements[0].required_points == pytest.approx(90.0)

    def test_actual_and_projected_drop_independently(self):
        result = compute_course_plan(
            course(
                cat(
                    "main",
                    [asg("a1", earned=70), asg("a2", earned=90), asg("a3", expected=50)],
                    drop=1,
                )
            )
        )
        # Actual drops the 70; projected drops the 50% forecast.
        assert result.actual_percent == pytest.approx(0.9)
        assert result.projected_percent == pytest.approx(0.8)
        assert result.dropped_assignment_ids == ["a3"]

    def test_zero_drop_and_empty_set_are_noops(self):
        scored = [ScoredAssignment(asg("a1", earned=10), 10, 0)]
        assert apply_drop_lowest(scored, 0) == (scored, [])
        assert apply_drop_lowest([], 2) == ([], [])

    def test_drop_more_than_available_keeps_nothing(self):
        scored = [ScoredAssignment(asg("a1", earned=10), 10, 0)]
        kept, dropped = apply_drop_lowest(scored, 3)
        assert kept == []
        assert dropped == scored


# ── Scores ────────────────────────────────────────────────────────────────────

class TestScores:
    def test_earned_capped_at_max_unless_extra_credit(self):
        result = compute_course_plan(
            course(cat("main", [asg("a1", earned=120), asg("bonus", 10, earned=15, extra=True)]))
        )
        assert result.actual_percent == pytest.approx((100 + 15) / 110)

    def test_ungraded_without_forecast_projects_full_credit(self):
        result = compute_course_plan(course(cat("main", [asg("a1", earned=80), asg("a2")])))
        assert result.actual_percent == pytest.approx(0.8)
        assert result.projected_percent == pytest.approx(0.9)

    def test_forecast_used_for_projection(self):
        result = compute_course_plan(course(cat("main", [asg("a1", earned=80), asg("a2", expected=70)])))
        assert result.projected_percent == pytest.approx(0.75)


# ── Weighted aggregation ──────────────────────────────────────────────────────

class TestWeightedAggregation:
    def test_weights_normalized_by_observed_total(self):
        result = compute_course_plan(
            course(
                cat("hw", [asg("h1", earned=80)], weight=30),
                cat("exam", [asg("e1", earned=60)], weight=30),
            )
        )
        assert [c.weight for c in result.categories] == [pytest.approx(0.5), pytest.approx(0.5)]
        assert sum(c.weight for c in result.categories) == pytest.approx(1.0)
        assert result.actual_percent == pytest.approx(0.7)

    def test_actual_renormalized_over_covered_weight(self):
        result = compute_course_plan(
            course(
                cat("hw", [asg("h1", earned=80)], weight=40),
                cat("exam", [asg("e1")], weight=60),
            )
        )
        assert result.actual_percent == pytest.approx(0.8)
        assert result.covered_weight == pytest.approx(0.4)
        assert result.remaining_weight == pytest.approx(0.6)

    def test_no_graded_work_means_no_actual(self):
        result = compute_course_plan(course(cat("main", [asg("a1")])))
        assert result.actual_percent is None
        assert result.covered_weight == 0
        assert result.remaining_weight == 1

    def test_empty_category_contributes_zero_to_projection(self):
        result = compute_course_plan(
            course(cat("hw", [asg("h1")], weight=50), cat("exam", [], weight=50))
        )
        assert result.projected_percent == pytest.approx(0.5)
        assert result.categories[1].projected_percent is None
        assert result.achievable is True

    def test_negative_weight_clamped(self):
        result = compute_course_plan(
            course(cat("hw", [asg("h1", earned=10)], weight=-10), cat("exam", [asg("e1", earned=90)], weight=50))
        )
        assert result.categories[0].weight == 0
        assert result.categories[1].weight == pytest.approx(1.0)

    def test_all_zero_weights_do_not_divide_by_zero(self):
        result = compute_course_plan(course(cat("main", [asg("a1", earned=90)], weight=0)))
        assert result.categories[0].weight == 0
        assert result.actual_percent is None
        assert result.projected_percent == 0


# ── Points aggregation ────────────────────────────────────────────────────────

class TestPointsAggregation:
    def test_sums_points_and_ignores_weights(self):
        result = compute_course_plan(
            course(
                cat("hw", [asg("h1", 100, earned=90)], weight=90),
                cat("quiz", [asg("q1", 50, earned=10)], weight=10),
                method=POINTS,
            )
        )
        assert result.actual_percent == pytest.approx(100 / 150)
        assert result.categories[0].weight == pytest.approx(100 / 150)
        assert result.categories[1].weight == pytest.approx(50 / 150)
        assert result.covered_weight == 1.0
        assert result.remaining_weight == 0.0

    def test_requirements_pooled_across_categories(self):
        result = compute_course_plan(
            course(
                cat("hw", [asg("h1", earned=90)], weight=0),
                cat("exam", [asg("e1")], weight=0),
                method=POINTS,
            )
        )
        assert result.achievable is True
        assert required(result)["e1"] == pytest.approx(90.0)
        assert result.projected_percent == pytest.approx(0.95)

    def test_pooled_requirement_unattainable(self):
        result = compute_course_plan(
            course(
                cat("hw", [asg("h1", 100, earned=90)]),
                cat("quiz", [asg("q1", 50, earned=10), asg("q2", 50)]),
                method=POINTS,
            )
        )
        assert result.achievable is False
        assert result.reason == UNATTAINABLE_REASON
        assert required(result)["q2"] == 50

    def test_extra_credit_max_not_counted_as_possible(self):
        result = compute_course_plan(
            course(
                cat("hw", [asg("h1", 100, earned=90)]),
                cat("bonus", [asg("b1", 10, earned=10, extra=True)]),
                method=POINTS,
            )
        )
        assert result.actual_percent == pytest.approx(1.0)
        assert result.projected_percent == pytest.approx(1.0)
        assert [c.weight for c in result.categories] == [1.0, 0.0]

    def test_remaining_extra_credit_asks_for_nothing(self):
        result = compute_course_plan(
            course(
                cat("hw", [asg("h1", 100, earned=50), asg("h2", 100)]),
                cat("bonus", [asg("b1", 20, extra=True)]),
                method=POINTS,
            )
        )
        # 180 of 200 needed, 50 earned: h2 alone cannot cover it, but the bonus keeps it open.
        assert result.achievable is True
        assert required(result) == {"h2": 100.0, "b1": 0.0}

    def test_only_extra_credit_remaining(self):
        result = compute_course_plan(
            course(cat("hw", [asg("h1", 100, earned=80), asg("b1", 10, extra=True)]), method=POINTS)
        )
        assert result.achievable is True
        assert required(result) == {"b1": 0.0}

    def test_nothing_kept_zeroes_weights(self):
        result = compute_course_plan(course(cat("hw", []), cat("quiz", []), method=POINTS))
        assert [c.weight for c in result.categories] == [0.0, 0.0]
        assert result.actual_percent is None
        assert result.projected_percent is None


# ── Letters ───────────────────────────────────────────────────────────────────

class TestLetters:
    def test_target_percent_table(self):
        assert target_percent_for("B") == 0.8
        assert target_percent_for("f") == 0
        assert target_percent_for("Z") == 0.9
        assert target_percent_for(None) == 0.9

    def test_desired_letter_drives_target(self):
        result = compute_course_plan(course(cat("main", [asg("a1")]), desired="C"))
        assert result.target_percent == 0.7
        assert required(result)["a1"] == pytest.approx(70.0)

    def test_get_letter_grade(self):
        assert get_letter_grade(0.95) == "A"
        assert get_letter_grade(0.9) == "A"
        assert get_letter_grade(0.85) == "B"
        assert get_letter_grade(0.61) == "D"
        assert get_letter_grade(0.5) == "F"
        assert get_letter_grade(None) is None


def test_same_input_same_output():
    plan = course(cat("main", [asg("a1", earned=70), asg("a2"), asg("a3", expected=40)], drop=1))
    assert compute_course_plan(plan) == compute_course_plan(plan)
