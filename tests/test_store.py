import json
import threading

import pytest

from engine.models import CategoryInput
from store.gradebook_store import GradebookStore, RecordNotFound

USER = "u1"


@pytest.fixture
def store():
    s = GradebookStore()
    s.add_year(USER, "Freshman", year_id="y1")
    s.add_semester(USER, "y1", "Spring", "2025-01-15", semester_id="spring")
    s.add_semester(USER, "y1", "Fall", "2024-09-01", semester_id="fall")
    return s


class TestRecords:
    def test_semesters_sorted_by_start_date(self, store):
        assert [s.id for s in store.semesters_for_user(USER)] == ["fall", "spring"]

    def test_records_are_scoped_to_user(self, store):
        with pytest.raises(RecordNotFound):
            store.get_semester("someone-else", "fall")
        with pytest.raises(RecordNotFound):
            store.add_course("someone-else", "fall", name="Calculus")

    def test_update_rejects_unknown_field(self, store):
        store.add_course(USER, "fall", id="c1", name="Calculus")
        with pytest.raises(ValueError):
            store.update_course(USER, "c1", colour="red")

    def test_move_course_to_unknown_semester(self, store):
        store.add_course(USER, "fall", id="c1", name="Calculus")
        with pytest.raises(RecordNotFound):
            store.update_course(USER, "c1", semester_id="nope")
        assert store.courses["c1"].semester_id == "fall"


class TestLocking:
    @pytest.mark.parametrize(
        "read",
        [
            lambda s: s.active_sessions(USER),
            lambda s: s.courses_for_semesters(["fall"]),
            lambda s: s.semesters_for_user(USER),
            lambda s: s.snapshots_for("session-1"),
        ],
    )
    def test_reads_wait_for_open_transaction(self, store, read):
        done = threading.Event()

        def reader():
            read(store)
            done.set()

        with store.transaction():
            thread = threading.Thread(target=reader)
            thread.start()
            assert not done.wait(0.1)
        assert done.wait(2)
        thread.join()

    def test_reads_during_concurrent_writes(self, store):
        errors = []
        stop = threading.Event()

        def reader():
            try:
                while not stop.is_set():
                    store.courses_for_semesters(["fall"])
                    store.semesters_for_user(USER)
            except RuntimeError as e:
                errors.append(e)

        thread = threading.Thread(target=reader)
        thread.start()
        try:
            for i in range(500):
                store.add_course(USER, "fall", id=f"c{i}", name=f"Course {i}")
                store.add_semester(USER, "y1", f"Term {i}", semester_id=f"t{i}")
        finally:
            stop.set()
            thread.join()
        assert errors == []


class TestTransaction:
    def test_rollback_restores_every_collection(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.add_course(USER, "fall", id="c1", name="Calculus")
                store.add_year(USER, "Sophomore", year_id="y2")
                raise RuntimeError("boom")
        assert store.courses == {}
        assert "y2" not in store.years

    def test_commit_keeps_writes(self, store):
        with store.transaction():
            store.add_course(USER, "fall", id="c1", name="Calculus")
        assert "c1" in store.courses


class TestSeed:
    def test_load_seed(self, tmp_path):
        seed = tmp_path / "seed.json"
        seed.write_text(json.dumps({
            "users": {
                USER: {
                    "years": [{
                        "id": "y1",
                        "name": "Freshman",
                        "semesters": [{
                            "id": "s1",
                            "name": "Fall 2024",
                            "start_date": "2024-09-01",
                            "courses": [
                                {"id": "c1", "name": "Calculus", "credits": "4", "semester_id": "ignored",
                                 "categories": [{"id": "hw", "weight_percent": 100, "assignments": []}]},
                                {"name": "Writing", "desired_letter_grade": "b"},
                            ],
                        }],
                    }],
                },
            },
        }), encoding="utf-8")

        store = GradebookStore()
        assert store.load_seed(str(seed)) == 2
        assert store.courses["c1"].semester_id == "s1"
        assert store.courses["c1"].credits == 4.0
        assert isinstance(store.courses["c1"].categories[0], CategoryInput)
        writing = [c for c in store.courses.values() if c.name == "Writing"][0]
        assert writing.desired_letter_grade == "B"

    def test_bad_seed_leaves_store_empty(self, tmp_path):
        seed = tmp_path / "seed.json"
        seed.write_text(json.dumps({
            "users": {USER: {"years": [{"name": "Y", "semesters": [{"name": "S", "courses": [{"credits": 3}]}]}]}},
        }), encoding="utf-8")

        store = GradebookStore()
        with pytest.raises(ValueError, match="name is required."):
            store.load_seed(str(seed))
        assert store.years == {} and store.courses == {}
