"""
Grade Planner — Flask application.
"""

import logging

from flask import Flask, jsonify, request

import config
from engine.gpa_allocation import allocate_target_gpa
from engine.grade_plan import compute_course_plan
from engine.simulation import run_semester_simulations, summarize_gpa
from engine.target_gpa import (
    TargetGpaConflictError,
    TargetGpaCoordinator,
    TargetGpaError,
    TargetGpaNotFoundError,
)
from parser.payloads import (
    parse_allocation_request,
    parse_course_plan,
    parse_course_record_fields,
    parse_letter,
    parse_scope,
    parse_target_gpa,
)
from store.gradebook_store import GradebookStore, RecordNotFound

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = config.MAX_CONTENT_LENGTH

store = GradebookStore()
coordinator = TargetGpaCoordinator(store)


def _load_seed():
    """Load the optional seed file into the store before serving."""
    if not config.SEED_PATH:
        return
    try:
        count = store.load_seed(config.SEED_PATH)
        print(f"[startup] Loaded {count} courses from {config.SEED_PATH}")
    except (OSError, ValueError) as e:
        print(f"[startup] Seed skipped: {e}")


def _ok(data, status: int = 200):
    return jsonify({"status": "ok", "data": data}), status


def _err(code: str, message: str, status: int, **extra):
    body = {"status": "error", "code": code, "message": message, **extra}
    return jsonify(body), status


def _target_err(e: TargetGpaError):
    if isinstance(e, TargetGpaConflictError):
        return _err("TARGET_CONFLICT", str(e), 409)
    if isinstance(e, TargetGpaNotFoundError):
        return _err("NOT_FOUND", str(e), 404)
    return _err("VALIDATION_ERROR", str(e), 400)


def _user_id() -> str:
    return request.headers.get("X-User-Id") or config.DEFAULT_USER_ID


def _body():
    return request.get_json(silent=True)


def _recompute(user_id: str, *semester_ids):
    seen = set()
    for semester_id in semester_ids:
        if semester_id in seen:
            continue
        seen.add(semester_id)
        coordinator.recompute_for_course_change(user_id, semester_id)


# ── Stateless engines ─────────────────────────────────────────────────────────


@app.route("/api/grade-plan", methods=["POST"])
def grade_plan():
    body = _body()
    if not body:
        return _err("INVALID_BODY", "JSON body required.", 400)

    try:
        course = parse_course_plan(body)
    except ValueError as e:
        return _err("INVALID_BODY", str(e), 400)

    try:
        return _ok(compute_course_plan(course).to_dict())
    except Exception as e:
        return _err("CALCULATION_ERROR", str(e), 500)


@app.route("/api/gpa-allocation", methods=["POST"])
def gpa_allocation():
    body = _body()
    if not body:
        return _err("INVALID_BODY", "JSON body required.", 400)

    try:
        courses, target_gpa = parse_allocation_request(body)
    except ValueError as e:
        return _err("INVALID_BODY", str(e), 400)

    try:
        return _ok(allocate_target_gpa(courses, target_gpa).to_dict())
    except Exception as e:
        return _err("CALCULATION_ERROR", str(e), 500)


# ── Years, semesters, courses ─────────────────────────────────────────────────


@app.route("/api/years", methods=["POST"])
def create_year():
    body = _body()
    if not body or not str(body.get("name") or "").strip():
        return _err("INVALID_BODY", "name is required.", 400)

    year = store.add_year(_user_id(), str(body["name"]).strip(), str(body.get("start_date") or ""))
    return _ok({"id": year.id, "name": year.name, "start_date": year.start_date}, 201)


@app.route("/api/years/<year_id>/semesters", methods=["POST"])
def create_semester(year_id):
    body = _body()
    if not body or not str(body.get("name") or "").strip():
        return _err("INVALID_BODY", "name is required.", 400)

    try:
        semester = store.add_semester(
            _user_id(), year_id, str(body["name"]).strip(), str(body.get("start_date") or "")
        )
    except RecordNotFound:
        return _err("NOT_FOUND", "Year not found.", 404)
    return _ok(
        {"id": semester.id, "year_id": semester.year_id, "name": semester.name, "start_date": semester.start_date},
        201,
    )


@app.route("/api/semesters/<semester_id>/courses", methods=["GET"])
def list_courses(semester_id):
    user_id = _user_id()
    try:
        store.get_semester(user_id, semester_id)
    except RecordNotFound:
        return _err("NOT_FOUND", "Semester not found.", 404)

    courses = store.courses_for_semesters([semester_id])
    return _ok({"courses": [c.summary() for c in courses], "summary": summarize_gpa(courses)})


@app.route("/api/semesters/<semester_id>/courses", methods=["POST"])
def create_course(semester_id):
    body = _body()
    if not body:
        return _err("INVALID_BODY", "JSON body required.", 400)

    user_id = _user_id()
    try:
        fields = parse_course_record_fields(body)
        fields.pop("semester_id", None)
        with store.transaction():
            course = store.add_course(user_id, semester_id, **fields)
            _recompute(user_id, semester_id)
        return _ok(course.summary(), 201)
    except ValueError as e:
        return _err("INVALID_BODY", str(e), 400)
    except RecordNotFound:
        return _err("NOT_FOUND", "Semester not found.", 404)
    except TargetGpaError as e:
        return _target_err(e)
    except Exception as e:
        return _err("SERVER_ERROR", str(e), 500)


@app.route("/api/courses/<course_id>", methods=["PATCH"])
def update_course(course_id):
    body = _body()
    if not body:
        return _err("INVALID_BODY", "JSON body required.", 400)

    user_id = _user_id()
    try:
        changes = parse_course_record_fields(body, partial=True)
        with store.transaction():
            previous_semester = store.get_course(user_id, course_id).semester_id
            course = store.update_course(user_id, course_id, **changes)
            # A move touches both the semester it left and the one it joined.
            _recompute(user_id, previous_semester, course.semester_id)
        return _ok(course.summary())
    except ValueError as e:
        return _err("INVALID_BODY", str(e), 400)
    except RecordNotFound as e:
        return _err("NOT_FOUND", str(e.args[0]) if e.args else "Not found.", 404)
    except TargetGpaError as e:
        return _target_err(e)
    except Exception as e:
        return _err("SERVER_ERROR", str(e), 500)


@app.route("/api/courses/<course_id>", methods=["DELETE"])
def delete_course(course_id):
    user_id = _user_id()
    try:
        with store.transaction():
            course = store.remove_course(user_id, course_id)
            _recompute(user_id, course.semester_id)
        return _ok({"id": course.id, "deleted": True})
    except RecordNotFound:
        return _err("NOT_FOUND", "Course not found.", 404)
    except TargetGpaError as e:
        return _target_err(e)
    except Exception as e:
        return _err("SERVER_ERROR", str(e), 500)


@app.route("/api/courses/<course_id>/grade-plan", methods=["GET"])
def course_grade_plan(course_id):
    try:
        desired = parse_letter(request.args.get("desired_grade") or "A", "desired_grade")
        course = store.get_course(_user_id(), course_id)
    except ValueError as e:
        return _err("INVALID_QUERY", str(e), 400)
    except RecordNotFound:
        return _err("NOT_FOUND", "Course not found.", 404)

    try:
        return _ok(compute_course_plan(course.to_plan_input(desired)).to_dict())
    except Exception as e:
        return _err("CALCULATION_ERROR", str(e), 500)


@app.route("/api/semesters/<semester_id>/run-simulations", methods=["POST"])
def run_simulations(semester_id):
    try:
        courses = run_semester_simulations(store, _user_id(), semester_id)
    except RecordNotFound:
        return _err("NOT_FOUND", "Semester not found.", 404)
    except Exception as e:
        return _err("SIMULATION_ERROR", str(e), 500)

    return _ok({"courses": [c.summary() for c in courses], "summary": summarize_gpa(courses)})


# ── Target GPA ────────────────────────────────────────────────────────────────


@app.route("/api/target-gpa/active", methods=["GET"])
def active_target_gpa():
    return _ok([s.to_dict() for s in coordinator.active_sessions(_user_id())])


@app.route("/api/target-gpa/enable", methods=["POST"])
def enable_target_gpa():
    body = _body()
    if not body:
        return _err("INVALID_BODY", "JSON body required.", 400)

    try:
        scope = parse_scope(body.get("scope"))
        target_gpa = parse_target_gpa(body.get("target_gpa"))
    except ValueError as e:
        return _err("INVALID_BODY", str(e), 400)

    try:
        session = coordinator.enable(
            _user_id(),
            scope,
            target_gpa,
            year_id=body.get("year_id"),
            semester_id=body.get("semester_id"),
        )
        return _ok(session, 201)
    except TargetGpaError as e:
        return _target_err(e)
    except Exception as e:
        return _err("SERVER_ERROR", str(e), 500)


@app.route("/api/target-gpa/disable", methods=["POST"])
def disable_target_gpa():
    body = _body()
    if not body:
        return _err("INVALID_BODY", "JSON body required.", 400)

    try:
        scope = parse_scope(body.get("scope"))
    except ValueError as e:
        return _err("INVALID_BODY", str(e), 400)

    try:
        result = coordinator.disable(
            _user_id(),
            scope,
            year_id=body.get("year_id"),
            semester_id=body.get("semester_id"),
        )
        return _ok(result)
    except TargetGpaError as e:
        return _target_err(e)
    except Exception as e:
        return _err("SERVER_ERROR", str(e), 500)


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL)
    _load_seed()
    print(f"[startup] Grade Planner listening on port {config.PORT}")
    app.run(debug=config.DEBUG, port=config.PORT)
