from __future__ import annotations
from datetime import date
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple
from pydantic import BaseModel, Field
from dates import (
    add_days,
    date_in_month,
    enumerate_local_days,
    rolling_year_window,
    to_date_key,
)
from models import Month, Session, Subject, SubjectSchedule

ScheduleKey = Tuple[str, str]  # (subject_id, month_key)

DEFAULT_PLANNED_SECONDS = 3600


class ScheduleMonthStats(BaseModel):
    subject_count: int = 0
    progress: float = 0.0
    total_goal_hours: int = 0
    total_studied_hours: float = 0.0


class StreakStats(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    total_active_days: int = 0
    day_map: Dict[str, float] = Field(default_factory=dict)  # date key -> minutes


class DayStat(BaseModel):
    day: date
    minutes: float
    level: int


class SubjectStat(BaseModel):
    subject_id: str
    name: str
    duration: int  # seconds
    count: int
    hours: float


class MonthSummary(BaseModel):
    month_key: str
    total_seconds: int
    hours: int
    minutes: int
    goal_progress: float
    subjects: List[SubjectStat]


def _completed(sessions: Iterable[Session]) -> List[Session]:
    return [s for s in sessions if s.status == "completed"]


def total_hours_for_subject(subject_id: str, sessions: Iterable[Session]) -> float:
    total_seconds = sum(
        s.duration for s in _completed(sessions) if s.subject_id == subject_id
    )
    return total_seconds / 3600


def sessions_on_date(date_key: str, sessions: Iterable[Session]) -> List[Session]:
    return [s for s in sessions if s.date == date_key]


def sessions_in_month(month_key: str, sessions: Iterable[Session]) -> List[Session]:
    return [s for s in sessions if date_in_month(s.date, month_key)]


def subjects_for_month(month_id: str, subjects: Iterable[Subject]) -> List[Subject]:
    return [s for s in subjects if s.month_id == month_id]


def month_progress(month_id: str, subjects: Iterable[Subject]) -> int:
    """
    Share of completed subtopics across every subject of a Month, 0-100.
    A Month without subtopics reports 0.
    """
    total = 0
    completed = 0
    for s in subjects_for_month(month_id, subjects):
        total += len(s.subtopics)
        completed += sum(1 for st in s.subtopics if st.is_completed)
    if total == 0:
        return 0
    # round half up, like the UI percentage
    return int(100 * completed / total + 0.5)


def schedule_month_stats(
    month_key: str,
    schedules: Mapping[ScheduleKey, SubjectSchedule],
    sessions: Iterable[Session],
) -> ScheduleMonthStats:
    month_schedules = {
        subject_id: sched
        for (subject_id, key), sched in schedules.items()
        if key == month_key
    }
    if not month_schedules:
        return ScheduleMonthStats()

    total_goal_hours = sum(s.monthly_goal for s in month_schedules.values())
    studied_seconds = sum(
        s.duration
        for s in _completed(sessions)
        if s.subject_id in month_schedules and date_in_month(s.date, month_key)
    )
    studied_hours = studied_seconds / 3600

    if all(s.is_completed for s in month_schedules.values()):
        progress = 100.0
    elif total_goal_hours > 0:
        progress = min(100.0, 100.0 * studied_hours / total_goal_hours)
    else:
        progress = 0.0

    return ScheduleMonthStats(
        subject_count=len(month_schedules),
        progress=progress,
        total_goal_hours=total_goal_hours,
        total_studied_hours=studied_hours,
    )


def planned_duration_seconds(schedule: SubjectSchedule | None) -> int:
    # average time per planned day; one hour when there is nothing to split
    if not schedule or not schedule.monthly_goal or not schedule.planned_days:
        return DEFAULT_PLANNED_SECONDS
    return (schedule.monthly_goal * 3600) // len(schedule.planned_days)


def build_day_map(sessions: Iterable[Session]) -> Dict[str, float]:
    # every status counts here, unlike the hour totals
    day_map: Dict[str, float] = {}
    for s in sessions:
        key = s.date.split("T", 1)[0]
        day_map[key] = day_map.get(key, 0.0) + s.duration / 60
    return day_map


def _studied(day_map: Mapping[str, float], d: date) -> bool:
    return day_map.get(to_date_key(d), 0) > 0


def current_streak(day_map: Mapping[str, float], today: date) -> int:
    cursor = today
    if not _studied(day_map, today) and _studied(day_map, add_days(today, -1)):
        cursor = add_days(today, -1)

    streak = 0
    while _studied(day_map, cursor):
        streak += 1
        cursor = add_days(cursor, -1)
    return streak


def longest_streak(day_map: Mapping[str, float], days: Sequence[date]) -> int:
    longest = 0
    run = 0
    for d in days:
        if _studied(day_map, d):
            run += 1
        else:
            longest = max(longest, run)
            run = 0
    return max(longest, run)


def calculate_streaks(
    sessions: Iterable[Session],
    today: date | None = None,
) -> StreakStats:
    today = today or date.today()
    day_map = build_day_map(sessions)
    start, end = rolling_year_window(today)
    return StreakStats(
        current_streak=current_streak(day_map, today),
        longest_streak=longest_streak(day_map, enumerate_local_days(start, end)),
        total_active_days=len(day_map),
        day_map=day_map,
    )


def intensity_level(minutes: float) -> int:
    if minutes == 0:
        return 0
    if minutes < 30:
        return 1
    if minutes < 60:
        return 2
    if minutes < 120:
        return 3
    return 4


def heatmap_days(
    day_map: Mapping[str, float],
    reference: date | None = None,
) -> List[DayStat]:
    start, end = rolling_year_window(reference)
    out: List[DayStat] = []
    for d in enumerate_local_days(start, end):
        minutes = day_map.get(to_date_key(d), 0.0)
        out.append(DayStat(day=d, minutes=minutes, level=intensity_level(minutes)))
    return out


def subject_breakdown(
    sessions: Iterable[Session],
    subjects: Iterable[Subject],
) -> List[SubjectStat]:
    by_id = {s.id: s for s in subjects}
    totals: Dict[str, List[int]] = {}
    for sess in _completed(sessions):
        if sess.subject_id not in by_id:
            continue
        entry = totals.setdefault(sess.subject_id, [0, 0])
        entry[0] += sess.duration
        entry[1] += 1

    out = [
        SubjectStat(
            subject_id=sid,
            name=by_id[sid].title,
            duration=duration,
            count=count,
            hours=round(duration / 3600, 1),
        )
        for sid, (duration, count) in totals.items()
    ]
    out.sort(key=lambda x: x.duration, reverse=True)
    return out


def month_summary(
    month_key: str,
    sessions: Iterable[Session],
    subjects: Iterable[Subject],
    monthly_goal_hours: int,
) -> MonthSummary:
    month_sessions = sessions_in_month(month_key, sessions)
    total_seconds = sum(s.duration for s in _completed(month_sessions))
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    if monthly_goal_hours > 0:
        goal_progress = min(100.0, 100.0 * hours / monthly_goal_hours)
    else:
        goal_progress = 0.0
    return MonthSummary(
        month_key=month_key,
        total_seconds=total_seconds,
        hours=hours,
        minutes=minutes,
        goal_progress=goal_progress,
        subjects=subject_breakdown(month_sessions, subjects),
    )


def daily_summary(date_key: str, sessions: Iterable[Session]) -> dict:
    day_sessions = sessions_on_date(date_key, sessions)
    total = sum(s.duration for s in day_sessions)
    return {
        "date": date_key,
        "total_seconds": total,
        "hours": total // 3600,
        "minutes": (total % 3600) // 60,
        "session_count": len(day_sessions),
    }


def subject_shares(
    subjects: Iterable[Subject],
    sessions: Iterable[Session],
) -> List[dict]:
    sessions = list(sessions)
    total_hours = sum(s.duration for s in sessions) / 3600
    rows = []
    for subj in subjects:
        hours = total_hours_for_subject(subj.id, sessions)
        whole = int(hours)
        rows.append({
            "subject_id": subj.id,
            "subject": subj.title,
            "color": subj.color,
            "hours": hours,
            "label": f"{whole}h {round((hours - whole) * 60)}m",
            "share": (hours / total_hours * 100) if total_hours > 0 else 0.0,
        })
    rows.sort(key=lambda x: x["hours"], reverse=True)
    return rows


def sort_months(months: Iterable[Month]) -> List[Month]:
    # stable: creation order is kept inside a year
    return sorted(months, key=lambda m: m.year or 0, reverse=True)


def format_clock(total_seconds: int) -> str:
    total_seconds = max(0, int(total_seconds))
    h = total_seconds // 3600
    m = (total_seconds % 3600) // 60
    s = total_seconds % 60
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m:02d}:{s:02d}"
