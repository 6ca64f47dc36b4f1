from __future__ import annotations
from datetime import datetime, time, timedelta
from typing import Iterable, List, Mapping, Tuple
from icalendar import Calendar, Event as IcsEvent
from dates import month_days, parse_date_key, to_date_key
from models import Settings, Subject, SubjectSchedule
from stats import ScheduleKey, planned_duration_seconds

DEFAULT_START_HOUR = 18


def planned_days_to_ics(
    subjects: Iterable[Subject],
    schedules: Mapping[ScheduleKey, SubjectSchedule],
    month_key: str,
    settings: Settings,
    start_hour: int = DEFAULT_START_HOUR,
) -> Tuple[bytes, List[str]]:
    """
    One event per planned day of every subject scheduled in month_key,
    lasting the average planned time per day. Planned days that fall
    outside the month are reported as warnings and left out.
    """
    cal = Calendar()
    cal.add("PRODID", "-//Study Tracker//Local//")
    cal.add("version", "2.0")
    cal.add("X-WR-CALNAME", f"Study Schedule {month_key}")

    warnings: List[str] = []
    valid_days = {to_date_key(d) for d in month_days(month_key)}

    for subject in subjects:
        schedule = schedules.get((subject.id, month_key))
        if schedule is None:
            continue
        seconds = planned_duration_seconds(schedule)
        for day_key in sorted(schedule.planned_days):
            if day_key not in valid_days:
                warnings.append(f"{subject.title}: {day_key} is outside {month_key}.")
                continue
            # floating time, read as local wall clock by calendar apps
            start = datetime.combine(parse_date_key(day_key), time(hour=start_hour))
            event = IcsEvent()
            event.add("uid", f"{subject.id}-{day_key}@study-tracker")
            event.add("summary", f"Study: {subject.title}")
            event.add("dtstart", start)
            event.add("dtend", start + timedelta(seconds=seconds))
            description = f"{seconds // 60} minutes planned"
            if schedule.monthly_goal:
                description += f" of a {schedule.monthly_goal}h monthly goal"
            if schedule.notes:
                description += f". {schedule.notes}"
            event.add("description", description + ".")
            event.add("categories", [settings.health_degree])
            cal.add_component(event)

    return cal.to_ical(), warnings
