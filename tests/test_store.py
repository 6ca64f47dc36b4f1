# tests/test_store.py
import pytest
from datetime import date, datetime
from typing import get_args
from pydantic import ValidationError

from dates import to_date_key
from models import POMODORO_MINUTES, AppState, HealthDegree
from storage import PersistenceError
from store import COPY_SUFFIX, StudyStore


class TestMonths:
    """Month mutations and their cascades."""

    def test_add_and_edit(self, store):
        month = store.add_month("Cardiology", 2024)
        assert store.months == [month]
        renamed = store.edit_month(month.id, "Cardio II")
        assert renamed.name == "Cardio II"
        assert store.get_month(month.id).name == "Cardio II"

    def test_empty_names_are_rejected(self, store, month):
        with pytest.raises(ValueError):
            store.add_month("   ", 2024)
        with pytest.raises(ValueError):
            store.edit_month(month.id, "")
        assert len(store.months) == 1

    def test_unknown_ids_are_no_ops(self, store, month):
        assert store.edit_month("missing", "x") is None
        assert store.delete_month("missing") is False
        assert store.duplicate_month("missing") is None
        assert store.months == [month]

    def test_delete_month_removes_subjects_but_not_sessions(self, store, month, subject):
        other = store.add_subject("Unassigned")
        store.start_manual_session(subject.id, 600)
        store.toggle_subject_in_month(subject.id, "2024-05")

        assert store.delete_month(month.id)

        assert store.months == []
        assert [s.id for s in store.subjects] == [other.id]
        assert store.schedule_for(subject.id, "2024-05") is None
        # sessions stay orphaned until their subject is deleted on its own
        assert [s.subject_id for s in store.sessions] == [subject.id]

    def test_duplicate_month_deep_copies_subjects(self, store, month, subject):
        store.add_subtopic(subject.id, "AF")
        store.update_subject_schedule(subject.id, "2024-05", {"monthly_goal": 8})
        store.toggle_subject_planned_day(subject.id, "2024-05", "2024-05-02")

        copy = store.duplicate_month(month.id)

        assert copy.name == "Cardiology" + COPY_SUFFIX
        assert copy.year == 2024
        clones = store.subjects_by_month_id(copy.id)
        assert len(clones) == 1
        clone = clones[0]
        assert clone.id != subject.id
        assert clone.title == subject.title
        assert clone.created_at >= subject.created_at
        assert [t.title for t in clone.subtopics] == ["AF"]
        assert store.schedule_for(clone.id, "2024-05").monthly_goal == 8

        # edits to the copy do not leak back
        store.toggle_subtopic(clone.id, clone.subtopics[0].id)
        store.toggle_subject_planned_day(clone.id, "2024-05", "2024-05-03")
        assert not store.get_subject(subject.id).subtopics[0].is_completed
        assert store.schedule_for(subject.id, "2024-05").planned_days == ["2024-05-02"]

    def test_active_schedule_months_are_a_set(self, store):
        store.add_active_schedule_month("2024-06")
        store.add_active_schedule_month("2024-05")
        store.add_active_schedule_month("2024-06")
        assert store.active_schedule_months == ["2024-05", "2024-06"]
        store.remove_active_schedule_month("2024-06")
        store.remove_active_schedule_month("2024-06")
        assert store.active_schedule_months == ["2024-05"]

    def test_active_schedule_month_requires_month_key(self, store):
        with pytest.raises(ValueError):
            store.add_active_schedule_month("June")


class TestSubjects:
    """Subject creation, deletion and subtopics."""

    def test_add_subject_defaults(self, store):
        subject = store.add_subject("Pharmacology")
        assert subject.month_id is None
        assert subject.subtopics == []
        assert store.subject_schedules(subject.id) == {}
        assert subject.color.startswith("hsl(")
        assert isinstance(subject.created_at, datetime)

    def test_empty_title_is_rejected(self, store):
        with pytest.raises(ValueError):
            store.add_subject("  ")
        assert store.subjects == []

    def test_delete_subject_cascades_to_sessions(self, store, subject):
        other = store.add_subject("Valves")
        store.start_manual_session(subject.id, 600)
        store.start_manual_session(subject.id, 700, "2024-01-01")
        kept = store.start_manual_session(other.id, 800)
        store.toggle_subject_in_month(subject.id, "2024-05")

        assert store.delete_subject(subject.id)

        assert [s for s in store.sessions if s.subject_id == subject.id] == []
        assert store.sessions == [kept]
        assert store.schedule_for(subject.id, "2024-05") is None
        assert store.delete_subject(subject.id) is False

    def test_import_subjects_skips_blank_titles(self, store, month):
        added = store.import_subjects(["Anatomy", " ", "", "Physiology"], month.id)
        assert [s.title for s in added] == ["Anatomy", "Physiology"]
        assert all(s.month_id == month.id for s in store.subjects)
        assert store.import_subjects([]) == []

    def test_toggle_subtopic(self, store, subject):
        topic = store.add_subtopic(subject.id, "AF")
        assert store.toggle_subtopic(subject.id, topic.id) is True
        assert store.get_subject(subject.id).subtopics[0].is_completed
        assert store.toggle_subtopic(subject.id, topic.id) is False
        assert store.toggle_subtopic(subject.id, "missing") is None
        assert store.toggle_subtopic("missing", topic.id) is None


class TestSchedules:
    """Per-subject, per-month schedule entries."""

    def test_toggle_in_month_is_a_presence_toggle(self, store, subject):
        assert store.toggle_subject_in_month(subject.id, "2024-05") is True
        assert store.schedule_for(subject.id, "2024-05").monthly_goal == 0
        assert store.toggle_subject_in_month(subject.id, "2024-05") is False
        assert store.schedule_for(subject.id, "2024-05") is None

    def test_toggling_back_on_drops_interim_edits(self, store, subject):
        store.toggle_subject_in_month(subject.id, "2024-05")
        store.update_subject_schedule(subject.id, "2024-05", {"monthly_goal": 10})
        store.toggle_subject_in_month(subject.id, "2024-05")
        store.toggle_subject_in_month(subject.id, "2024-05")
        sched = store.schedule_for(subject.id, "2024-05")
        assert sched.monthly_goal == 0
        assert sched.planned_days == []

    def test_update_merges_fields(self, store, subject):
        store.update_subject_schedule(subject.id, "2024-05", {"monthly_goal": 12})
        store.update_subject_schedule(subject.id, "2024-05", {"notes": "ECG"})
        store.update_subject_schedule(subject.id, "2024-05", {"is_completed": True})
        sched = store.schedule_for(subject.id, "2024-05")
        assert (sched.monthly_goal, sched.notes, sched.is_completed) == (12, "ECG", True)

    def test_update_rejects_bad_values_without_changes(self, store, subject):
        store.update_subject_schedule(subject.id, "2024-05", {"monthly_goal": 3})
        with pytest.raises(ValidationError):
            store.update_subject_schedule(subject.id, "2024-05", {"monthly_goal": -1})
        with pytest.raises(ValidationError):
            store.update_subject_schedule(subject.id, "2024-05", {"goal": 5})
        assert store.schedule_for(subject.id, "2024-05").monthly_goal == 3

    def test_planned_days_never_duplicate(self, store, subject):
        sequence = ["2024-05-01", "2024-05-02", "2024-05-01", "2024-05-01", "2024-05-03", "2024-05-02"]
        for day in sequence:
            store.toggle_subject_planned_day(subject.id, "2024-05", day)
            planned = store.schedule_for(subject.id, "2024-05").planned_days
            assert len(planned) == len(set(planned))
        assert store.schedule_for(subject.id, "2024-05").planned_days == ["2024-05-01", "2024-05-03"]

    def test_planned_day_creates_schedule(self, store, subject):
        assert store.toggle_subject_planned_day(subject.id, "2024-07", "2024-07-04") is True
        assert store.schedule_for(subject.id, "2024-07").planned_days == ["2024-07-04"]
        assert store.toggle_subject_planned_day("missing", "2024-07", "2024-07-04") is None

    def test_schedule_ops_on_unknown_subject(self, store):
        assert store.toggle_subject_in_month("missing", "2024-05") is None
        assert store.update_subject_schedule("missing", "2024-05", {"monthly_goal": 1}) is None
        assert store.schedules == {}

    def test_subjects_scheduled_in(self, store, subject):
        other = store.add_subject("Valves")
        store.toggle_subject_in_month(other.id, "2024-05")
        assert store.subjects_scheduled_in("2024-05") == [other]


class TestSessions:
    """Recording and editing sessions."""

    def test_manual_session_defaults_to_today(self, store, subject):
        session = store.start_manual_session(subject.id, 1500)
        assert session.date == to_date_key(date.today())
        assert session.status == "completed"
        assert session.duration == 1500

    def test_manual_session_requires_positive_duration(self, store, subject):
        with pytest.raises(ValueError):
            store.start_manual_session(subject.id, 0)
        assert store.sessions == []

    def test_record_session_fills_defaults(self, store, subject):
        start = datetime(2024, 5, 1, 7, 0)
        session = store.record_session({
            "subject_id": subject.id,
            "duration": 60,
            "date": "2024-05-01",
            "start_time": start,
            "status": "incomplete",
            "id": "ignored",
        })
        assert session.id != "ignored"
        assert session.start_time == start
        assert session.status == "incomplete"

    def test_record_session_rejects_negative_duration(self, store, subject):
        with pytest.raises(ValidationError):
            store.record_session({"subject_id": subject.id, "duration": -5})
        assert store.sessions == []

    def test_record_session_for_unknown_subject(self, store):
        assert store.record_session({"subject_id": "missing", "duration": 60}) is None
        assert store.record_session({"duration": 60}) is None
        assert store.sessions == []

    def test_ids_are_unique(self, store, subject):
        ids = {store.start_manual_session(subject.id, 60).id for _ in range(5)}
        assert len(ids) == 5

    def test_status_update_and_delete(self, store, subject):
        session = store.start_manual_session(subject.id, 900, "2024-05-01")
        updated = store.update_session_status(session.id, "incomplete")
        assert (updated.status, updated.duration, updated.date) == ("incomplete", 900, "2024-05-01")
        assert store.update_session_status("missing", "completed") is None
        assert store.delete_session(session.id)
        assert store.delete_session(session.id) is False
        assert store.sessions == []

    def test_toggle_day_completion(self, store, subject):
        store.update_subject_schedule(subject.id, "2024-05", {"monthly_goal": 4})
        store.toggle_subject_planned_day(subject.id, "2024-05", "2024-05-01")
        store.toggle_subject_planned_day(subject.id, "2024-05", "2024-05-02")

        assert store.toggle_day_completion(subject.id, "2024-05-01") is True
        (session,) = store.sessions
        assert session.duration == 2 * 3600
        assert session.start_time == datetime(2024, 5, 1, 12, 0)

        incomplete = store.record_session({
            "subject_id": subject.id, "duration": 60, "date": "2024-05-01", "status": "incomplete",
        })
        assert store.toggle_day_completion(subject.id, "2024-05-01") is False
        assert store.sessions == [incomplete]

    def test_toggle_day_completion_without_schedule(self, store, subject):
        store.toggle_day_completion(subject.id, "2024-08-09")
        assert store.sessions[0].duration == 3600


class TestSettingsAndObservers:
    """Settings merges, subscriptions and persistence failures."""

    def test_settings_defaults_and_merge(self, store):
        assert store.settings.pomodoro_duration == 25
        assert store.settings.monthly_goal_hours == 40
        merged = store.update_settings({"user_name": "Ana", "monthly_goal_hours": 60})
        assert merged.user_name == "Ana"
        assert merged.pomodoro_duration == 25
        assert store.settings.monthly_goal_hours == 60

    def test_settings_reject_unknown_degree(self, store):
        with pytest.raises(ValidationError):
            store.update_settings({"health_degree": "Law"})
        assert store.settings.health_degree == "Medicine"

    def test_settings_bounds_and_degrees(self, store):
        assert store.update_settings({"pomodoro_duration": 180}).pomodoro_duration == 180
        with pytest.raises(ValidationError):
            store.update_settings({"pomodoro_duration": 181})
        with pytest.raises(ValidationError):
            store.update_settings({"short_break_duration": 61})
        assert POMODORO_MINUTES == (1, 180)
        assert len(get_args(HealthDegree)) == 9
        assert "Clinical Analysis" in get_args(HealthDegree)

    def test_returned_records_are_read_only(self, store, month, subject):
        store.add_subtopic(subject.id, "Valves")
        store.toggle_subject_planned_day(subject.id, "2024-05", "2024-05-03")
        with pytest.raises(ValidationError):
            store.months[0].name = "Other"
        with pytest.raises(ValidationError):
            store.settings.pomodoro_duration = 1
        with pytest.raises(ValidationError):
            store.get_subject(subject.id).title = "Other"

        store.subjects[0].subtopics.clear()
        store.get_subject(subject.id).subtopics.clear()
        store.schedule_for(subject.id, "2024-05").planned_days.clear()
        store.schedules[(subject.id, "2024-05")].planned_days.clear()
        assert [t.title for t in store.get_subject(subject.id).subtopics] == ["Valves"]
        assert store.schedule_for(subject.id, "2024-05").planned_days == ["2024-05-03"]
        assert store.months[0].name == "Cardiology"

    def test_subscribers_see_every_mutation(self, store):
        seen = []
        unsubscribe = store.subscribe(lambda s: seen.append(len(s.months)))
        store.add_month("A", 2024)
        store.add_month("B", 2024)
        unsubscribe()
        store.add_month("C", 2024)
        assert seen == [1, 2]

    def test_rejected_mutation_does_not_notify(self, store):
        seen = []
        store.subscribe(lambda s: seen.append(True))
        with pytest.raises(ValueError):
            store.add_subject("")
        assert seen == []

    def test_persistence_failure_is_surfaced_and_state_kept(self):
        def broken(snapshot):
            raise OSError("disk full")

        store = StudyStore(persist=broken)
        with pytest.raises(PersistenceError):
            store.add_month("Cardiology", 2024)
        assert [m.name for m in store.months] == ["Cardiology"]
        assert isinstance(store.last_error, PersistenceError)

    def test_persister_receives_snapshots(self):
        saved = []
        store = StudyStore(persist=saved.append)
        month = store.add_month("Cardiology", 2024)
        subject = store.add_subject("Valves", month.id)
        store.toggle_subject_in_month(subject.id, "2024-05")
        assert isinstance(saved[-1], AppState)
        assert "2024-05" in saved[-1].subjects[0].schedules
        assert store.last_error is None


class TestSnapshots:
    """Snapshot round trips through the textual form."""

    def test_round_trip(self, populated_store):
        original = populated_store.snapshot()
        text = original.model_dump_json()
        restored_state = AppState.model_validate_json(text)
        restored = StudyStore.from_state(restored_state)

        assert restored.months == populated_store.months
        assert restored.subjects == populated_store.subjects
        assert restored.sessions == populated_store.sessions
        assert restored.settings == populated_store.settings
        assert restored.active_schedule_months == populated_store.active_schedule_months
        assert restored.schedules == populated_store.schedules
        assert restored.snapshot() == original

    def test_round_trip_keeps_nested_schedules_and_order(self, populated_store):
        state = AppState.model_validate_json(populated_store.snapshot().model_dump_json())
        arr = next(s for s in state.subjects if s.title == "Arrhythmias")
        assert list(arr.schedules) == ["2024-05"]
        assert arr.schedules["2024-05"].planned_days == ["2024-05-03", "2024-05-01", "2024-05-02"]
        assert arr.schedules["2024-05"].notes == "focus on ECG"
        assert [s.title for s in state.subjects] == ["Arrhythmias", "Heart failure", "Stroke"]
        assert len(state.sessions) == 5

    def test_snapshot_is_detached(self, populated_store):
        snapshot = populated_store.snapshot()
        snapshot.subjects[0].schedules.clear()
        snapshot.months.clear()
        assert len(populated_store.months) == 2
        assert populated_store.schedule_for(populated_store.subjects[0].id, "2024-05") is not None
