"""
GPA target allocation — pure logic, no external dependencies.

Finds the smallest letter grades across a set of courses that reach a target
GPA, spending upgrades on the highest-credit courses first.
"""

from engine.models import GRADE_POINTS, AllocationCourse, AllocationResult

# Upgrade ladder. Allocation starts every open course at D, never F.
GRADE_LADDER = ("D", "C", "B", "A")

# Float noise guard for the remaining deficit.
_EPSILON = 1e-9


def grade_points(letter) -> float:
    if not letter:
        return 0.0
    return GRADE_POINTS.get(str(letter).strip().upper(), 0.0)


def allocate_course(course: AllocationCourse, grade: str, deficit: float) -> tuple[str, float]:
    """
    Step one course up the ladder until it reaches A or the deficit is covered.

    Returns (new_grade, points_gained).
    """
    index = GRADE_LADDER.index(grade)
    gained = 0.0
    while index < len(GRADE_LADDER) - 1 and deficit - gained > _EPSILON:
        current, upgraded = GRADE_LADDER[index], GRADE_LADDER[index + 1]
        gained += (grade_points(upgraded) - grade_points(current)) * course.credits
        index += 1
    return GRADE_LADDER[index], gained


def allocate_target_gpa(courses: list, target_gpa: float) -> AllocationResult:
    """
    Assign a minimal letter to every open course so the set reaches `target_gpa`.

    Completed courses are locked at their actual letter (missing counts as F)
    and never appear in the assignments. When the target cannot be reached even
    with straight A's, every open course is assigned A and the result carries
    the best reachable GPA and the shortfall; otherwise both are None.
    """
    total_credits = sum(c.credits or 0 for c in courses)
    if not total_credits:
        return AllocationResult(assignments={}, max_achievable_gpa=None, gpa_shortfall=None)

    locked = [c for c in courses if c.is_completed]
    eligible = [c for c in courses if not c.is_completed]

    locked_points = sum(grade_points(c.actual_letter_grade or "F") * c.credits for c in locked)

    assignments = {c.id: GRADE_LADDER[0] for c in eligible}
    current_points = locked_points + sum(grade_points(GRADE_LADDER[0]) * c.credits for c in eligible)
    deficit = target_gpa * total_credits - current_points

    # Stable sort: equal-credit courses keep their input order.
    by_credits = sorted(eligible, key=lambda c: c.credits, reverse=True)
    for course in by_credits:
        if deficit <= _EPSILON:
            break
        assignments[course.id], gained = allocate_course(course, assignments[course.id], deficit)
        deficit -= gained

    max_achievable_gpa = None
    gpa_shortfall = None
    if deficit > _EPSILON:
        max_points = locked_points + sum(grade_points("A") * c.credits for c in eligible)
        max_achievable_gpa = max_points / total_credits
        gpa_shortfall = max(target_gpa - max_achievable_gpa, 0)
        for c in eligible:
            assignments[c.id] = "A"

    return AllocationResult(
        assignments=assignments,
        max_achievable_gpa=max_achievable_gpa,
        gpa_shortfall=gpa_shortfall,
    )


def credit_weighted_gpa(courses: list, letter_of) -> float | None:
    """Credit-weighted GPA over the courses for which `letter_of(course)` is a known letter."""
    counted = [c for c in courses if letter_of(c) and str(letter_of(c)).strip().upper() in GRADE_POINTS]
    total = sum(c.credits for c in counted)
    if not total:
        return None
    return sum(grade_points(letter_of(c)) * c.credits for c in counted) / total
