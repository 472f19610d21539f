"""
Batch grade simulation for a semester and credit-weighted GPA summaries.
"""

import logging

from engine.gpa_allocation import credit_weighted_gpa, grade_points
from engine.grade_plan import compute_course_plan, get_letter_grade

logger = logging.getLogger(__name__)


def run_semester_simulations(store, user_id: str, semester_id: str) -> list:
    """
    Recompute and store the actual grade of every open course in a semester.

    Each course is planned against its own desired letter; the actual percent
    is saved as a whole-number percentage alongside its letter. Completed
    courses keep their locked grade. Returns the semester's courses.
    """
    with store.transaction():
        store.get_semester(user_id, semester_id)
        courses = store.courses_for_semesters([semester_id])
        for course in courses:
            if course.is_completed:
                continue
            plan = compute_course_plan(course.to_plan_input())
            percent = plan.actual_percent
            store.update_course(
                user_id,
                course.id,
                actual_percent_grade=round(percent * 100) if percent is not None else None,
                actual_letter_grade=get_letter_grade(percent),
            )

    logger.info("Ran simulations for %d courses in semester %s", len(courses), semester_id)
    return courses


def summarize_gpa(courses: list) -> dict:
    """Current GPA from actual letters, goal GPA from desired letters, and at-risk count."""
    at_risk = 0
    for c in courses:
        if not c.actual_letter_grade or not c.desired_letter_grade:
            continue
        if grade_points(c.actual_letter_grade) < grade_points(c.desired_letter_grade):
            at_risk += 1

    return {
        "current_gpa": credit_weighted_gpa(courses, lambda c: c.actual_letter_grade),
        "target_gpa": credit_weighted_gpa(courses, lambda c: c.desired_letter_grade),
        "at_risk_count": at_risk,
        "total_credits": sum(c.credits for c in courses),
    }
