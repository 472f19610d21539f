"""
Target GPA sessions — career, year and semester goals that drive each course's
desired letter grade.

Enabling a session snapshots every affected course's desired grade, runs the
allocation engine and writes the assigned letters back. Disabling restores
the snapshot. Course-set changes re-run the allocation for the session that
covers them without taking a new snapshot.
"""

import logging
import math

from engine.gpa_allocation import allocate_target_gpa
from engine.models import CAREER, SCOPES, SEMESTER, YEAR
from store.gradebook_store import RecordNotFound, TargetSession, TargetSnapshot, utc_now

logger = logging.getLogger(__name__)


class TargetGpaError(Exception):
    """Base class; messages are shown to the user as-is."""


class TargetGpaValidationError(TargetGpaError):
    pass


class TargetGpaConflictError(TargetGpaError):
    pass


class TargetGpaNotFoundError(TargetGpaError):
    pass


def _validate_scope_ids(scope, year_id, semester_id):
    if scope not in SCOPES:
        raise TargetGpaValidationError(f"Scope must be one of {', '.join(SCOPES)}.")
    if scope == CAREER and (year_id or semester_id):
        raise TargetGpaValidationError("Career scope does not support year or semester filters.")
    if scope == YEAR:
        if not year_id:
            raise TargetGpaValidationError("Year is required.")
        if semester_id:
            raise TargetGpaValidationError("Year scope does not support a semester filter.")
    if scope == SEMESTER:
        if not semester_id:
            raise TargetGpaValidationError("Semester is required.")
        if year_id:
            raise TargetGpaValidationError("Semester scope does not support a year filter.")


def _warn_if_out_of_reach(result, scope, target_gpa, user_id):
    if not result.feasible:
        logger.warning(
            "%s target GPA %.2f for user %s is out of reach; best possible is %.2f",
            scope, target_gpa, user_id, result.max_achievable_gpa,
        )


class TargetGpaCoordinator:
    def __init__(self, store, allocate=allocate_target_gpa):
        self.store = store
        self.allocate = allocate

    def active_sessions(self, user_id: str) -> list:
        return self.store.active_sessions(user_id)

    # ── Enable ────────────────────────────────────────────────────────────────

    def enable(self, user_id: str, scope: str, target_gpa: float,
               year_id: str = None, semester_id: str = None) -> dict:
        """
        Start a target GPA session.

        Raises TargetGpaValidationError, TargetGpaNotFoundError or
        TargetGpaConflictError before anything is written.
        """
        _validate_scope_ids(scope, year_id, semester_id)
        if target_gpa is None or not math.isfinite(target_gpa) or target_gpa < 0 or target_gpa > 4:
            raise TargetGpaValidationError("Target GPA must be between 0 and 4.")

        with self.store.transaction():
            try:
                self._check_conflicts(user_id, scope, year_id, semester_id)
            except TargetGpaConflictError as e:
                logger.warning("Rejected %s target GPA for user %s: %s", scope, user_id, e)
                raise

            courses, semester_ids = self._courses_for_scope(user_id, scope, year_id, semester_id)
            if not courses:
                raise TargetGpaValidationError("No courses available for this scope.")

            result = self.allocate([c.to_allocation_course() for c in courses], target_gpa)

            session = self.store.add_session(
                TargetSession(
                    id="",
                    user_id=user_id,
                    scope=scope,
                    target_gpa=target_gpa,
                    year_id=year_id,
                    semester_id=semester_id,
                    max_achievable_gpa=result.max_achievable_gpa,
                    gpa_shortfall=result.gpa_shortfall,
                )
            )
            self.store.add_snapshots([
                TargetSnapshot(
                    session_id=session.id,
                    course_id=c.id,
                    previous_desired_letter_grade=c.desired_letter_grade,
                )
                for c in courses
            ])
            self._apply_assignments(user_id, courses, result.assignments)

        _warn_if_out_of_reach(result, scope, target_gpa, user_id)
        logger.info(
            "Enabled %s target GPA %.2f for user %s over %d courses (shortfall=%s)",
            scope, target_gpa, user_id, len(courses), result.gpa_shortfall,
        )
        return {
            **session.to_dict(),
            "semesters": semester_ids,
            "assignments": dict(result.assignments),
            "feasible": result.feasible,
        }

    def _check_conflicts(self, user_id, scope, year_id, semester_id):
        active = self.store.active_sessions(user_id)

        if scope == CAREER:
            if active:
                raise TargetGpaConflictError(
                    "Disable the active target GPA before enabling a career target."
                )
            return

        if any(s.scope == CAREER for s in active):
            raise TargetGpaConflictError("A career target GPA is already active.")

        if scope == YEAR:
            self._year(user_id, year_id)
            for s in active:
                if s.scope == YEAR and s.year_id == year_id:
                    raise TargetGpaConflictError("A target GPA is already active for this year.")
                if s.scope == SEMESTER and self._year_of_semester(user_id, s.semester_id) == year_id:
                    raise TargetGpaConflictError("A semester target GPA is already active in this year.")
            return

        semester = self._semester(user_id, semester_id)
        for s in active:
            if s.scope == YEAR and s.year_id == semester.year_id:
                raise TargetGpaConflictError("A year target GPA already covers this semester.")
            if s.scope == SEMESTER and s.semester_id == semester_id:
                raise TargetGpaConflictError("A target GPA is already active for this semester.")

    # ── Disable ───────────────────────────────────────────────────────────────

    def disable(self, user_id: str, scope: str, year_id: str = None, semester_id: str = None) -> dict:
        """
        Close the matching active session and restore the snapshotted goals.

        Returns {"disabled": False} when no session matches.
        """
        _validate_scope_ids(scope, year_id, semester_id)

        with self.store.transaction():
            session = self._find_active(user_id, scope, year_id, semester_id)
            if session is None:
                return {"disabled": False}

            restored = 0
            for snap in self.store.snapshots_for(session.id):
                course = self.store.courses.get(snap.course_id)
                if course is None:
                    continue
                self.store.update_course(
                    user_id, course.id, desired_letter_grade=snap.previous_desired_letter_grade
                )
                restored += 1

            session.disabled_at = utc_now()

        logger.info("Disabled %s target GPA for user %s, restored %d courses", scope, user_id, restored)
        return {"disabled": True, "session": session.to_dict(), "restored": restored}

    def _find_active(self, user_id, scope, year_id=None, semester_id=None):
        for s in self.store.active_sessions(user_id):
            if s.scope != scope:
                continue
            if scope == YEAR and s.year_id != year_id:
                continue
            if scope == SEMESTER and s.semester_id != semester_id:
                continue
            return s
        return None

    # ── Recompute ─────────────────────────────────────────────────────────────

    def recompute_for_course_change(self, user_id: str, semester_id: str = None):
        """
        Re-run the allocation for the session covering a changed course set.

        Precedence: an active career session, then a year session covering
        the semester's year, then a session for the semester itself. Returns
        the recomputed session, or None when nothing covers the change.
        """
        with self.store.transaction():
            session = self._covering_session(user_id, semester_id)
            if session is None:
                return None

            courses, _ = self._courses_for_scope(
                user_id, session.scope, session.year_id, session.semester_id
            )
            if not courses:
                logger.info("Target GPA session %s has no courses left; keeping last result", session.id)
                return session

            result = self.allocate([c.to_allocation_course() for c in courses], session.target_gpa)
            self._apply_assignments(user_id, courses, result.assignments)
            session.max_achievable_gpa = result.max_achievable_gpa
            session.gpa_shortfall = result.gpa_shortfall

        _warn_if_out_of_reach(result, session.scope, session.target_gpa, user_id)
        logger.info(
            "Recomputed %s target GPA for user %s over %d courses (shortfall=%s)",
            session.scope, user_id, len(courses), session.gpa_shortfall,
        )
        return session

    def _covering_session(self, user_id, semester_id):
        active = self.store.active_sessions(user_id)
        for s in active:
            if s.scope == CAREER:
                return s
        if not semester_id:
            return None

        year_id = self._year_of_semester(user_id, semester_id)
        if year_id is not None:
            for s in active:
                if s.scope == YEAR and s.year_id == year_id:
                    return s
        for s in active:
            if s.scope == SEMESTER and s.semester_id == semester_id:
                return s
        return None

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _year(self, user_id, year_id):
        try:
            return self.store.get_year(user_id, year_id)
        except RecordNotFound:
            raise TargetGpaNotFoundError("Year not found.")

    def _semester(self, user_id, semester_id):
        try:
            return self.store.get_semester(user_id, semester_id)
        except RecordNotFound:
            raise TargetGpaNotFoundError("Semester not found.")

    def _year_of_semester(self, user_id, semester_id):
        semester = self.store.semesters.get(semester_id)
        if semester is None or semester.user_id != user_id:
            return None
        return semester.year_id

    def _courses_for_scope(self, user_id, scope, year_id=None, semester_id=None) -> tuple[list, list]:
        if scope == SEMESTER:
            semester_ids = [self._semester(user_id, semester_id).id]
        elif scope == YEAR:
            self._year(user_id, year_id)
            semester_ids = [s.id for s in self.store.semesters_for_user(user_id, year_id)]
        else:
            semester_ids = [s.id for s in self.store.semesters_for_user(user_id)]
        return self.store.courses_for_semesters(semester_ids), semester_ids

    def _apply_assignments(self, user_id, courses, assignments):
        for course in courses:
            if course.is_completed:
                continue
            letter = assignments.get(course.id, course.desired_letter_grade)
            self.store.update_course(user_id, course.id, desired_letter_grade=letter)
