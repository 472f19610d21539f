"""
In-memory gradebook store — years, semesters, courses and target GPA sessions.

Every coordinator operation runs inside `transaction()`: the store-wide lock is
held for the whole block and the previous state is restored if it raises.
"""

import copy
import json
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone

from engine.models import WEIGHTED, AllocationCourse, CategoryInput, CoursePlanInput


class RecordNotFound(KeyError):
    """Raised when an id does not resolve to a stored record."""


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class YearRecord:
    id: str
    user_id: str
    name: str
    start_date: str = ""


@dataclass
class SemesterRecord:
    id: str
    user_id: str
    year_id: str
    name: str
    start_date: str = ""


@dataclass
class CourseRecord:
    id: str
    semester_id: str
    name: str
    credits: float = 3.0
    code: str = ""
    desired_letter_grade: str = "A"
    grading_method: str = WEIGHTED
    is_completed: bool = False
    actual_letter_grade: str | None = None
    actual_percent_grade: float | None = None
    categories: list[CategoryInput] = field(default_factory=list)

    def to_plan_input(self, desired_letter_grade: str | None = None) -> CoursePlanInput:
        return CoursePlanInput(
            id=self.id,
            name=self.name,
            desired_letter_grade=desired_letter_grade or self.desired_letter_grade,
            grading_method=self.grading_method,
            categories=self.categories,
        )

    def to_allocation_course(self) -> AllocationCourse:
        return AllocationCourse(
            id=self.id,
            credits=self.credits,
            desired_letter_grade=self.desired_letter_grade,
            actual_letter_grade=self.actual_letter_grade,
            is_completed=self.is_completed,
        )

    def summary(self) -> dict:
        return {
            "id": self.id,
            "semester_id": self.semester_id,
            "name": self.name,
            "code": self.code,
            "credits": self.credits,
            "desired_letter_grade": self.desired_letter_grade,
            "grading_method": self.grading_method,
            "is_completed": self.is_completed,
            "actual_letter_grade": self.actual_letter_grade,
            "actual_percent_grade": self.actual_percent_grade,
        }


@dataclass
class TargetSession:
    id: str
    user_id: str
    scope: str
    target_gpa: float
    year_id: str | None = None
    semester_id: str | None = None
    max_achievable_gpa: float | None = None
    gpa_shortfall: float | None = None
    created_at: str = ""
    disabled_at: str | None = None

    @property
    def active(self) -> bool:
        return self.disabled_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope": self.scope,
            "target_gpa": self.target_gpa,
            "year_id": self.year_id,
            "semester_id": self.semester_id,
            "max_achievable_gpa": self.max_achievable_gpa,
            "gpa_shortfall": self.gpa_shortfall,
            "created_at": self.created_at,
            "disabled_at": self.disabled_at,
        }


@dataclass
class TargetSnapshot:
    session_id: str
    course_id: str
    previous_desired_letter_grade: str


_COURSE_FIELDS = {f.name for f in fields(CourseRecord)}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class GradebookStore:
    def __init__(self):
        self._lock = threading.RLock()
        self.years = {}
        self.semesters = {}
        self.courses = {}
        self.sessions = {}
        self.snapshots = []

    # ── Transactions ──────────────────────────────────────────────────────────

    def _state(self) -> dict:
        return {
            "years": self.years,
            "semesters": self.semesters,
            "courses": self.courses,
            "sessions": self.sessions,
            "snapshots": self.snapshots,
        }

    @contextmanager
    def transaction(self):
        """Serialize the block against other transactions; roll back on error."""
        with self._lock:
            saved = copy.deepcopy(self._state())
            try:
                yield self
            except BaseException:
                for name, value in saved.items():
                    setattr(self, name, value)
                raise

    # ── Years and semesters ───────────────────────────────────────────────────

    def add_year(self, user_id: str, name: str, start_date: str = "", year_id: str = None) -> YearRecord:
        with self._lock:
            year = YearRecord(id=year_id or _new_id(), user_id=user_id, name=name, start_date=start_date)
            self.years[year.id] = year
            return year

    def get_year(self, user_id: str, year_id: str) -> YearRecord:
        year = self.years.get(year_id)
        if year is None or year.user_id != user_id:
            raise RecordNotFound(f"Year not found: {year_id}")
        return year

    def add_semester(self, user_id: str, year_id: str, name: str, start_date: str = "",
                     semester_id: str = None) -> SemesterRecord:
        with self._lock:
            self.get_year(user_id, year_id)
            semester = SemesterRecord(
                id=semester_id or _new_id(),
                user_id=user_id,
                year_id=year_id,
                name=name,
                start_date=start_date,
            )
            self.semesters[semester.id] = semester
            return semester

    def get_semester(self, user_id: str, semester_id: str) -> SemesterRecord:
        semester = self.semesters.get(semester_id)
        if semester is None or semester.user_id != user_id:
            raise RecordNotFound(f"Semester not found: {semester_id}")
        return semester

    def semesters_for_user(self, user_id: str, year_id: str = None) -> list:
        with self._lock:
            found = [
                s for s in self.semesters.values()
                if s.user_id == user_id and (year_id is None or s.year_id == year_id)
            ]
        return sorted(found, key=lambda s: s.start_date)

    # ── Courses ───────────────────────────────────────────────────────────────

    def add_course(self, user_id: str, semester_id: str, **values) -> CourseRecord:
        with self._lock:
            self.get_semester(user_id, semester_id)
            course_id = values.pop("id", None) or _new_id()
            course = CourseRecord(id=course_id, semester_id=semester_id, **values)
            self.courses[course.id] = course
            return course

    def get_course(self, user_id: str, course_id: str) -> CourseRecord:
        course = self.courses.get(course_id)
        if course is None:
            raise RecordNotFound(f"Course not found: {course_id}")
        self.get_semester(user_id, course.semester_id)
        return course

    def update_course(self, user_id: str, course_id: str, **changes) -> CourseRecord:
        with self._lock:
            course = self.get_course(user_id, course_id)
            if "semester_id" in changes:
                self.get_semester(user_id, changes["semester_id"])
            for name, value in changes.items():
                if name not in _COURSE_FIELDS or name == "id":
                    raise ValueError(f"Unknown course field: {name}")
                setattr(course, name, value)
            return course

    def remove_course(self, user_id: str, course_id: str) -> CourseRecord:
        with self._lock:
            course = self.get_course(user_id, course_id)
            del self.courses[course_id]
            return course

    def courses_for_semesters(self, semester_ids) -> list:
        wanted = set(semester_ids)
        with self._lock:
            return [c for c in self.courses.values() if c.semester_id in wanted]

    # ── Target sessions ───────────────────────────────────────────────────────

    def active_sessions(self, user_id: str) -> list:
        with self._lock:
            found = [s for s in self.sessions.values() if s.user_id == user_id and s.active]
        return sorted(found, key=lambda s: s.created_at)

    def add_session(self, session: TargetSession) -> TargetSession:
        with self._lock:
            session.id = session.id or _new_id()
            session.created_at = session.created_at or utc_now()
            self.sessions[session.id] = session
            return session

    def add_snapshots(self, snapshots: list) -> None:
        with self._lock:
            self.snapshots.extend(snapshots)

    def snapshots_for(self, session_id: str) -> list:
        with self._lock:
            return [s for s in self.snapshots if s.session_id == session_id]

    # ── Seeding ───────────────────────────────────────────────────────────────

    def load_seed(self, path: str) -> int:
        """
        Load years → semesters → courses (with categories) from a JSON file.

        Expected shape:
            {"users": {"<user_id>": {"years": [{"name", "start_date",
              "semesters": [{"name", "start_date", "courses": [<course payload>]}]}]}}}

        Returns the number of courses loaded.
        """
        from parser.payloads import parse_course_record_fields

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        loaded = 0
        with self.transaction():
            for user_id, user in (data.get("users") or {}).items():
                for y in user.get("years", []):
                    year = self.add_year(user_id, y.get("name", ""), y.get("start_date", ""), y.get("id"))
                    for s in y.get("semesters", []):
                        semester = self.add_semester(
                            user_id, year.id, s.get("name", ""), s.get("start_date", ""), s.get("id")
                        )
                        for c in s.get("courses", []):
                            values = parse_course_record_fields(c)
                            values.pop("semester_id", None)
                            self.add_course(user_id, semester.id, **values)
                            loaded += 1
        return loaded
