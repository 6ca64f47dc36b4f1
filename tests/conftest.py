# tests/conftest.py
import pytest
from datetime import date, datetime

from models import Session
from store import StudyStore


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Redirect snapshot storage to a temporary directory."""
    target = tmp_path / "data"
    target.mkdir()
    monkeypatch.setenv("STUDY_TRACKER_DATA_DIR", str(target))
    return target


@pytest.fixture
def store():
    """Empty in-memory store without persistence."""
    return StudyStore()


@pytest.fixture
def month(store):
    return store.add_month("Cardiology", 2024)


@pytest.fixture
def subject(store, month):
    return store.add_subject("Arrhythmias", month.id)


@pytest.fixture
def populated_store(store):
    """Two months, three subjects with schedules and subtopics, five sessions."""
    cardio = store.add_month("Cardiology", 2024)
    neuro = store.add_month("Neurology", 2025)
    arr = store.add_subject("Arrhythmias", cardio.id)
    hf = store.add_subject("Heart failure", cardio.id)
    stroke = store.add_subject("Stroke", neuro.id)
    store.add_subtopics(arr.id, ["Atrial fibrillation", "Flutter"])
    store.add_subtopic(stroke.id, "Thrombolysis")

    store.toggle_subject_in_month(arr.id, "2024-05")
    store.update_subject_schedule(arr.id, "2024-05", {"monthly_goal": 10, "notes": "focus on ECG"})
    for day in ("2024-05-03", "2024-05-01", "2024-05-02"):
        store.toggle_subject_planned_day(arr.id, "2024-05", day)
    store.toggle_subject_in_month(hf.id, "2024-05")
    store.toggle_subject_in_month(stroke.id, "2024-06")
    store.add_active_schedule_month("2024-06")
    store.add_active_schedule_month("2024-05")

    store.start_manual_session(arr.id, 1800, "2024-05-01")
    store.start_manual_session(arr.id, 3600, "2024-05-02")
    store.start_manual_session(hf.id, 900, "2024-05-02")
    store.record_session({"subject_id": stroke.id, "duration": 1200, "date": "2024-06-10", "status": "incomplete"})
    store.record_session({
        "subject_id": stroke.id,
        "duration": 2400,
        "date": "2024-06-11",
        "start_time": datetime(2024, 6, 11, 8, 30),
    })
    return store


def _build_session(subject_id, day, duration=600, status="completed", session_id=None):
    if isinstance(day, date):
        day = day.isoformat()
    return Session(
        id=session_id or f"{subject_id}-{day}-{duration}",
        subject_id=subject_id,
        duration=duration,
        date=day,
        start_time=datetime.fromisoformat(day + "T09:00:00"),
        status=status,
    )


@pytest.fixture
def make_session():
    """Factory for Session objects built directly, bypassing the store."""
    return _build_session
