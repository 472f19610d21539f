"""
Payload parser — turns JSON request bodies into engine records.

Numbers arrive as whatever the client sent (ints, floats, numeric strings);
they are normalized here so the engines only ever see floats. Raises
ValueError with a display-ready message when a body cannot be used.
"""

import math

from engine.models import (
    GRADING_METHODS,
    LETTER_GRADES,
    SCOPES,
    WEIGHTED,
    AllocationCourse,
    AssignmentInput,
    CategoryInput,
    CoursePlanInput,
)


def _to_float(value, default=None):
    """Coerce to float; None, blanks, junk and non-finite numbers become `default`."""
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _to_int(value, default=0) -> int:
    number = _to_float(value)
    return int(number) if number is not None else default


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y"}
    return bool(value)


def parse_letter(value, field_name: str = "letter grade", required: bool = True):
    """Validate a letter grade (A-F, case-insensitive)."""
    if value is None or value == "":
        if required:
            raise ValueError(f"{field_name} is required.")
        return None
    letter = str(value).strip().upper()
    if letter not in LETTER_GRADES:
        raise ValueError(f"{field_name} must be one of {', '.join(LETTER_GRADES)}.")
    return letter


def parse_grading_method(value) -> str:
    if value is None or value == "":
        return WEIGHTED
    method = str(value).strip().upper()
    if method not in GRADING_METHODS:
        raise ValueError(f"grading_method must be one of {', '.join(GRADING_METHODS)}.")
    return method


def parse_scope(value) -> str:
    scope = str(value or "").strip().upper()
    if scope not in SCOPES:
        raise ValueError(f"scope must be one of {', '.join(SCOPES)}.")
    return scope


def parse_target_gpa(value) -> float:
    gpa = _to_float(value)
    if gpa is None:
        raise ValueError("target_gpa must be a number.")
    if gpa < 0 or gpa > 4:
        raise ValueError("target_gpa must be between 0 and 4.")
    return gpa


def parse_assignment(raw: dict, position: int = 0) -> AssignmentInput:
    if not isinstance(raw, dict):
        raise ValueError("Each assignment must be an object.")
    earned = _to_float(raw.get("earned_points"))
    return AssignmentInput(
        id=str(raw.get("id") or f"assignment-{position + 1}"),
        name=str(raw.get("name") or f"Assignment {position + 1}"),
        max_points=max(_to_float(raw.get("max_points"), 0.0), 0.0),
        is_extra_credit=_to_bool(raw.get("is_extra_credit", False)),
        is_graded=_to_bool(raw.get("is_graded", earned is not None)),
        earned_points=earned,
        expected_points=_to_float(raw.get("expected_points")),
    )


def parse_category(raw: dict, position: int = 0) -> CategoryInput:
    if not isinstance(raw, dict):
        raise ValueError("Each category must be an object.")
    assignments = raw.get("assignments") or []
    if not isinstance(assignments, list):
        raise ValueError("assignments must be a list.")
    return CategoryInput(
        id=str(raw.get("id") or f"category-{position + 1}"),
        name=str(raw.get("name") or f"Category {position + 1}"),
        weight_percent=_to_float(raw.get("weight_percent"), 0.0),
        drop_lowest=max(_to_int(raw.get("drop_lowest")), 0),
        assignments=[parse_assignment(a, i) for i, a in enumerate(assignments)],
    )


def parse_categories(raw) -> list:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("categories must be a list.")
    return [parse_category(c, i) for i, c in enumerate(raw)]


def parse_course_plan(body: dict, desired_letter_grade: str = None) -> CoursePlanInput:
    """
    Parse a course tree for the grade projection engine.

    Unknown desired letters are not rejected here: the engine falls back to
    an A target for them.
    """
    if not isinstance(body, dict):
        raise ValueError("JSON body required.")
    if "categories" not in body:
        raise ValueError("categories are required.")
    return CoursePlanInput(
        id=str(body.get("id") or "course"),
        name=str(body.get("name") or ""),
        desired_letter_grade=desired_letter_grade or str(body.get("desired_letter_grade") or "A"),
        grading_method=parse_grading_method(body.get("grading_method")),
        categories=parse_categories(body.get("categories")),
    )


def parse_allocation_course(raw: dict, position: int = 0) -> AllocationCourse:
    if not isinstance(raw, dict):
        raise ValueError("Each course must be an object.")
    return AllocationCourse(
        id=str(raw.get("id") or f"course-{position + 1}"),
        credits=max(_to_float(raw.get("credits"), 0.0), 0.0),
        desired_letter_grade=parse_letter(raw.get("desired_letter_grade"), "desired_letter_grade", False) or "A",
        actual_letter_grade=parse_letter(raw.get("actual_letter_grade"), "actual_letter_grade", False),
        is_completed=_to_bool(raw.get("is_completed", False)),
    )


def parse_allocation_request(body: dict) -> tuple[list, float]:
    """Returns (courses, target_gpa) for the GPA allocation engine."""
    if not isinstance(body, dict):
        raise ValueError("JSON body required.")
    courses = body.get("courses")
    if not isinstance(courses, list):
        raise ValueError("courses must be a list.")
    return (
        [parse_allocation_course(c, i) for i, c in enumerate(courses)],
        parse_target_gpa(body.get("target_gpa")),
    )


_COURSE_UPDATABLE = (
    "name",
    "code",
    "credits",
    "desired_letter_grade",
    "grading_method",
    "is_completed",
    "actual_letter_grade",
    "actual_percent_grade",
    "categories",
    "semester_id",
)


def parse_course_record_fields(body: dict, partial: bool = False) -> dict:
    """
    Parse course fields for storage.

    With `partial`, only the keys present in the body are returned (PATCH);
    otherwise `name` is required and defaults fill the rest.
    """
    if not isinstance(body, dict):
        raise ValueError("JSON body required.")
    if not partial and not str(body.get("name") or "").strip():
        raise ValueError("name is required.")

    parsers = {
        "name": lambda v: str(v or "").strip(),
        "code": lambda v: str(v or "").strip(),
        "credits": lambda v: max(_to_float(v, 0.0), 0.0),
        "desired_letter_grade": lambda v: parse_letter(v, "desired_letter_grade"),
        "grading_method": parse_grading_method,
        "is_completed": _to_bool,
        "actual_letter_grade": lambda v: parse_letter(v, "actual_letter_grade", False),
        "actual_percent_grade": _to_float,
        "categories": parse_categories,
        "semester_id": lambda v: str(v),
    }

    parsed = {}
    for key in _COURSE_UPDATABLE:
        if key in body:
            parsed[key] = parsers[key](body[key])
    if "id" in body and not partial:
        parsed["id"] = str(body["id"])
    return parsed
