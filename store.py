from __future__ import annotations
import logging
import random
from datetime import datetime, time
from typing import Callable, Dict, Iterable, List, Mapping, Optional
from uuid import uuid4
from dates import parse_date_key, parse_month_key, to_date_key
from models import (
    AppState,
    Month,
    Session,
    SessionStatus,
    Settings,
    Subject,
    SubjectSchedule,
    Subtopic,
)
from stats import (
    ScheduleKey,
    StreakStats,
    calculate_streaks,
    planned_duration_seconds,
    sessions_on_date,
    total_hours_for_subject,
)
from storage import PersistenceError

logger = logging.getLogger(__name__)

COPY_SUFFIX = " (Copy)"

Listener = Callable[["StudyStore"], None]
Persister = Callable[[AppState], None]


def generate_id() -> str:
    return str(uuid4())


def random_color() -> str:
    return f"hsl({random.random() * 360:.0f}, 70%, 50%)"


def _require_text(value: str, what: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValueError(f"{what} cannot be empty.")
    return text


class StudyStore:
    """
    Single source of truth for months, subjects, schedules, sessions and
    settings.

    Mutations validate first and then swap in the new collections, so a
    rejected call never leaves a partial update behind. Unknown ids are a
    silent no-op. Schedules live in one flat mapping keyed by
    (subject_id, month_key) and are nested back under each subject only
    when a snapshot is taken.

    Month deletion cascades to subjects only; sessions of those subjects
    stay until the subject itself is deleted through delete_subject.
    """

    def __init__(
        self,
        state: AppState | None = None,
        persist: Persister | None = None,
    ) -> None:
        state = state or AppState()
        self.profile = state.profile
        self._months: List[Month] = [m.model_copy() for m in state.months]
        self._subjects: List[Subject] = []
        self._schedules: Dict[ScheduleKey, SubjectSchedule] = {}
        for subj in state.subjects:
            for month_key, sched in subj.schedules.items():
                self._schedules[(subj.id, month_key)] = sched.model_copy(deep=True)
            self._subjects.append(subj.model_copy(update={"schedules": {}}, deep=True))
        self._sessions: List[Session] = [s.model_copy() for s in state.sessions]
        self._settings: Settings = state.settings.model_copy()
        self._active_schedule_months: List[str] = list(
            dict.fromkeys(state.active_schedule_months)
        )
        self._persist = persist
        self._listeners: List[Listener] = []
        self.last_error: Optional[PersistenceError] = None

    @classmethod
    def from_state(cls, state: AppState, persist: Persister | None = None) -> "StudyStore":
        return cls(state, persist=persist)

    # ---- observation and persistence ----

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def snapshot(self) -> AppState:
        subjects = []
        for subj in self._subjects:
            schedules = {
                month_key: sched.model_copy(deep=True)
                for (subject_id, month_key), sched in self._schedules.items()
                if subject_id == subj.id
            }
            subjects.append(subj.model_copy(update={"schedules": schedules}, deep=True))
        return AppState(
            months=[m.model_copy() for m in self._months],
            subjects=subjects,
            sessions=[s.model_copy() for s in self._sessions],
            settings=self._settings.model_copy(),
            active_schedule_months=list(self._active_schedule_months),
            profile=self.profile,
        )

    def _commit(self) -> None:
        for listener in list(self._listeners):
            listener(self)
        if self._persist is None:
            return
        try:
            self._persist(self.snapshot())
        except PersistenceError as e:
            self._persist_failed(e)
            raise
        except OSError as e:
            err = PersistenceError(str(e))
            self._persist_failed(err)
            raise err from e
        self.last_error = None

    def _persist_failed(self, err: PersistenceError) -> None:
        self.last_error = err
        logger.error("Could not persist state for %s: %s", self.profile, err)

    # ---- queries ----
    # records are frozen; subjects and schedules also carry lists, so
    # callers get deep copies of those

    @property
    def months(self) -> List[Month]:
        return list(self._months)

    @property
    def subjects(self) -> List[Subject]:
        return [s.model_copy(deep=True) for s in self._subjects]

    @property
    def sessions(self) -> List[Session]:
        return list(self._sessions)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def active_schedule_months(self) -> List[str]:
        return sorted(self._active_schedule_months, key=parse_month_key)

    @property
    def schedules(self) -> Mapping[ScheduleKey, SubjectSchedule]:
        return {key: sched.model_copy(deep=True) for key, sched in self._schedules.items()}

    def get_month(self, month_id: str) -> Optional[Month]:
        return next((m for m in self._months if m.id == month_id), None)

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        subject = next((s for s in self._subjects if s.id == subject_id), None)
        return subject.model_copy(deep=True) if subject is not None else None

    def get_session(self, session_id: str) -> Optional[Session]:
        return next((s for s in self._sessions if s.id == session_id), None)

    def subjects_by_month_id(self, month_id: str) -> List[Subject]:
        return [s.model_copy(deep=True) for s in self._subjects if s.month_id == month_id]

    def schedule_for(self, subject_id: str, month_key: str) -> Optional[SubjectSchedule]:
        sched = self._schedules.get((subject_id, month_key))
        return sched.model_copy(deep=True) if sched is not None else None

    def subject_schedules(self, subject_id: str) -> Dict[str, SubjectSchedule]:
        return {
            month_key: sched.model_copy(deep=True)
            for (sid, month_key), sched in self._schedules.items()
            if sid == subject_id
        }

    def subjects_scheduled_in(self, month_key: str) -> List[Subject]:
        return [s.model_copy(deep=True) for s in self._subjects if (s.id, month_key) in self._schedules]

    def total_hours_for_subject(self, subject_id: str) -> float:
        return total_hours_for_subject(subject_id, self._sessions)

    def sessions_on_date(self, date_key: str) -> List[Session]:
        return sessions_on_date(date_key, self._sessions)

    def streak_stats(self, today=None) -> StreakStats:
        return calculate_streaks(self._sessions, today=today)

    # ---- months ----

    def add_month(self, name: str, year: int) -> Month:
        month = Month(id=generate_id(), name=_require_text(name, "Month name"), year=year)
        self._months = self._months + [month]
        logger.debug("Added month %s (%s)", month.id, month.name)
        self._commit()
        return month

    def edit_month(self, month_id: str, name: str) -> Optional[Month]:
        name = _require_text(name, "Month name")
        month = self.get_month(month_id)
        if month is None:
            return None
        renamed = month.model_copy(update={"name": name})
        self._months = [renamed if m.id == month_id else m for m in self._months]
        self._commit()
        return renamed

    def delete_month(self, month_id: str) -> bool:
        if self.get_month(month_id) is None:
            return False
        removed = {s.id for s in self._subjects if s.month_id == month_id}
        self._months = [m for m in self._months if m.id != month_id]
        self._subjects = [s for s in self._subjects if s.id not in removed]
        self._schedules = {k: v for k, v in self._schedules.items() if k[0] not in removed}
        logger.info("Deleted month %s with %d subjects", month_id, len(removed))
        self._commit()
        return True

    def duplicate_month(self, month_id: str) -> Optional[Month]:
        month = self.get_month(month_id)
        if month is None:
            return None
        copy = Month(id=generate_id(), name=month.name + COPY_SUFFIX, year=month.year)
        now = datetime.now()
        new_subjects = []
        new_schedules = dict(self._schedules)
        for subj in self._subjects:
            if subj.month_id != month_id:
                continue
            clone = subj.model_copy(
                update={"id": generate_id(), "month_id": copy.id, "created_at": now},
                deep=True,
            )
            new_subjects.append(clone)
            for month_key, sched in self.subject_schedules(subj.id).items():
                new_schedules[(clone.id, month_key)] = sched.model_copy(deep=True)
        self._months = self._months + [copy]
        self._subjects = self._subjects + new_subjects
        self._schedules = new_schedules
        logger.info("Duplicated month %s into %s (%d subjects)", month_id, copy.id, len(new_subjects))
        self._commit()
        return copy

    def add_active_schedule_month(self, month_key: str) -> None:
        parse_month_key(month_key)
        if month_key in self._active_schedule_months:
            return
        self._active_schedule_months = self._active_schedule_months + [month_key]
        self._commit()

    def remove_active_schedule_month(self, month_key: str) -> None:
        if month_key not in self._active_schedule_months:
            return
        self._active_schedule_months = [
            m for m in self._active_schedule_months if m != month_key
        ]
        self._commit()

    # ---- subjects ----

    def _build_subject(self, title: str, month_id: Optional[str]) -> Subject:
        return Subject(
            id=generate_id(),
            title=_require_text(title, "Subject title"),
            color=random_color(),
            created_at=datetime.now(),
            month_id=month_id,
        )

    def add_subject(self, title: str, month_id: Optional[str] = None) -> Subject:
        subject = self._build_subject(title, month_id)
        self._subjects = self._subjects + [subject]
        logger.debug("Added subject %s (%s)", subject.id, subject.title)
        self._commit()
        return subject

    def import_subjects(self, titles: Iterable[str], month_id: Optional[str] = None) -> List[Subject]:
        """Batch insert, e.g. titles returned by a text organizer. Blank titles are skipped."""
        new_subjects = [
            self._build_subject(t, month_id) for t in titles if t and t.strip()
        ]
        if not new_subjects:
            return []
        self._subjects = self._subjects + new_subjects
        logger.info("Imported %d subjects", len(new_subjects))
        self._commit()
        return new_subjects

    def delete_subject(self, subject_id: str) -> bool:
        if self.get_subject(subject_id) is None:
            return False
        before = len(self._sessions)
        self._subjects = [s for s in self._subjects if s.id != subject_id]
        self._sessions = [s for s in self._sessions if s.subject_id != subject_id]
        self._schedules = {k: v for k, v in self._schedules.items() if k[0] != subject_id}
        logger.info(
            "Deleted subject %s with %d sessions", subject_id, before - len(self._sessions)
        )
        self._commit()
        return True

    def _replace_subject(self, updated: Subject) -> None:
        self._subjects = [updated if s.id == updated.id else s for s in self._subjects]

    def add_subtopic(self, subject_id: str, title: str) -> Optional[Subtopic]:
        added = self.add_subtopics(subject_id, [_require_text(title, "Subtopic title")])
        return added[0] if added else None

    def add_subtopics(self, subject_id: str, titles: Iterable[str]) -> List[Subtopic]:
        subject = self.get_subject(subject_id)
        if subject is None:
            return []
        new_items = [
            Subtopic(id=generate_id(), title=t.strip())
            for t in titles
            if t and t.strip()
        ]
        if not new_items:
            return []
        self._replace_subject(
            subject.model_copy(update={"subtopics": subject.subtopics + new_items})
        )
        self._commit()
        return new_items

    def toggle_subtopic(self, subject_id: str, subtopic_id: str) -> Optional[bool]:
        subject = self.get_subject(subject_id)
        if subject is None:
            return None
        if not any(st.id == subtopic_id for st in subject.subtopics):
            return None
        subtopics = [
            st.model_copy(update={"is_completed": not st.is_completed})
            if st.id == subtopic_id
            else st
            for st in subject.subtopics
        ]
        self._replace_subject(subject.model_copy(update={"subtopics": subtopics}))
        self._commit()
        return next(st.is_completed for st in subtopics if st.id == subtopic_id)

    # ---- schedules ----

    def toggle_subject_in_month(self, subject_id: str, month_key: str) -> Optional[bool]:
        """
        Presence toggle. Unscheduling deletes the entry, so toggling back on
        starts again from a fresh default. Returns True when now scheduled.
        """
        parse_month_key(month_key)
        if self.get_subject(subject_id) is None:
            return None
        key = (subject_id, month_key)
        schedules = dict(self._schedules)
        if key in schedules:
            del schedules[key]
            scheduled = False
        else:
            schedules[key] = SubjectSchedule()
            scheduled = True
        self._schedules = schedules
        self._commit()
        return scheduled

    def update_subject_schedule(
        self,
        subject_id: str,
        month_key: str,
        updates: Mapping[str, object],
    ) -> Optional[SubjectSchedule]:
        parse_month_key(month_key)
        if self.get_subject(subject_id) is None:
            return None
        current = self._schedules.get((subject_id, month_key)) or SubjectSchedule()
        merged = SubjectSchedule.model_validate({**current.model_dump(), **dict(updates)})
        self._schedules = {**self._schedules, (subject_id, month_key): merged}
        self._commit()
        return merged

    def toggle_subject_planned_day(
        self,
        subject_id: str,
        month_key: str,
        date_key: str,
    ) -> Optional[bool]:
        parse_month_key(month_key)
        date_key = to_date_key(parse_date_key(date_key))
        if self.get_subject(subject_id) is None:
            return None
        current = self._schedules.get((subject_id, month_key)) or SubjectSchedule()
        if date_key in current.planned_days:
            planned_days = [d for d in current.planned_days if d != date_key]
            planned = False
        else:
            planned_days = current.planned_days + [date_key]
            planned = True
        self._schedules = {
            **self._schedules,
            (subject_id, month_key): current.model_copy(update={"planned_days": planned_days}),
        }
        self._commit()
        return planned

    # ---- sessions ----

    def _append_session(self, session: Session) -> Session:
        self._sessions = self._sessions + [session]
        logger.debug(
            "Recorded %ss session for %s on %s (%s)",
            session.duration, session.subject_id, session.date, session.status,
        )
        self._commit()
        return session

    def start_manual_session(
        self,
        subject_id: str,
        duration: int,
        date_key: Optional[str] = None,
    ) -> Optional[Session]:
        """Log a known duration (seconds) against a subject, today unless a day is given."""
        if duration <= 0:
            raise ValueError("Session duration must be positive.")
        return self.record_session({
            "subject_id": subject_id,
            "duration": duration,
            "date": date_key,
        })

    def record_session(self, record: Mapping[str, object]) -> Optional[Session]:
        """
        Record a session from a partial mapping. Missing date defaults to
        today, start_time to now, status to completed. A fresh id is always
        assigned.
        """
        subject_id = record.get("subject_id")
        if not subject_id or self.get_subject(str(subject_id)) is None:
            return None
        now = datetime.now()
        date_key = record.get("date") or to_date_key(now)
        session = Session(
            id=generate_id(),
            subject_id=str(subject_id),
            duration=record.get("duration") or 0,
            date=to_date_key(parse_date_key(str(date_key))),
            start_time=record.get("start_time") or now,
            status=record.get("status") or "completed",
        )
        return self._append_session(session)

    def delete_session(self, session_id: str) -> bool:
        if self.get_session(session_id) is None:
            return False
        self._sessions = [s for s in self._sessions if s.id != session_id]
        self._commit()
        return True

    def update_session_status(self, session_id: str, status: SessionStatus) -> Optional[Session]:
        session = self.get_session(session_id)
        if session is None:
            return None
        updated = Session.model_validate({**session.model_dump(), "status": status})
        self._sessions = [updated if s.id == session_id else s for s in self._sessions]
        self._commit()
        return updated

    def toggle_day_completion(self, subject_id: str, date_key: str) -> Optional[bool]:
        """
        Mark a planned day done or not done. Done days get one completed
        session at local noon sized to the planned duration for that month;
        undoing removes every completed session of the subject on that day.
        Returns True when the day is now done.
        """
        day = parse_date_key(date_key)
        date_key = to_date_key(day)
        if self.get_subject(subject_id) is None:
            return None
        done = [
            s for s in self._sessions
            if s.subject_id == subject_id and s.date == date_key and s.status == "completed"
        ]
        if done:
            done_ids = {s.id for s in done}
            self._sessions = [s for s in self._sessions if s.id not in done_ids]
            self._commit()
            return False

        schedule = self._schedules.get((subject_id, date_key[:7]))
        self.record_session({
            "subject_id": subject_id,
            "date": date_key,
            "start_time": datetime.combine(day, time(hour=12)),
            "duration": planned_duration_seconds(schedule),
            "status": "completed",
        })
        return True

    # ---- settings ----

    def update_settings(self, updates: Mapping[str, object]) -> Settings:
        merged = Settings.model_validate({**self._settings.model_dump(), **dict(updates)})
        self._settings = merged
        self._commit()
        return merged
