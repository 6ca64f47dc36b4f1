from __future__ import annotations
import logging
import os
import time
import streamlit as st
import pandas as pd
from datetime import date
from typing import get_args

from calendar_export import planned_days_to_ics
from dates import month_days, to_date_key, to_month_key
from models import BREAK_MINUTES, POMODORO_MINUTES, HealthDegree
from pdf_export import month_report_to_pdf
from profiles import GUEST_USER, delete_user_state, list_users, open_store
from stats import (
    daily_summary,
    format_clock,
    heatmap_days,
    month_progress,
    month_summary,
    schedule_month_stats,
    sort_months,
    subject_shares,
)
from storage import PersistenceError
from store import StudyStore
from suggestions import (
    SuggestionError,
    parse_subject_titles,
    parse_subtopic_titles,
    titles_from_lines,
)
from timer import PomodoroTimer, Stopwatch, advance


logging.basicConfig(
    level=os.environ.get("STUDY_TRACKER_LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("study_tracker")

HEALTH_DEGREES = list(get_args(HealthDegree))

st.set_page_config(page_title="Study Tracker", page_icon="📚", layout="wide")


def _ensure_session_state() -> StudyStore:
    if "user_id" not in st.session_state:
        st.session_state.user_id = GUEST_USER
    if "store" not in st.session_state:
        st.session_state.store = open_store(st.session_state.user_id)
        _reset_timers(st.session_state.store)
    return st.session_state.store


def _switch_user(user_id: str) -> None:
    logger.info("Switching to user %s", user_id)
    st.session_state.user_id = user_id
    st.session_state.store = open_store(user_id)
    _reset_timers(st.session_state.store)


def _reset_timers(store: StudyStore) -> None:
    st.session_state.stopwatch = Stopwatch(store)
    st.session_state.pomodoro = PomodoroTimer(store)
    st.session_state.pop("tick_anchor", None)


def _queue_toast(message: str) -> None:
    st.session_state.toast_message = message


def _flush_toast() -> None:
    message = st.session_state.pop("toast_message", None)
    if message:
        st.toast(message)


def _run(action, *args, success: str | None = None):
    """Apply a store mutation and surface validation or disk errors."""
    try:
        result = action(*args)
    except PersistenceError as e:
        st.error(f"Saved in memory only, could not write to disk: {e}")
        return None
    except ValueError as e:
        st.warning(str(e))
        return None
    if success:
        _queue_toast(success)
    return result


def render_months(store: StudyStore) -> None:
    st.header("Months")

    with st.form("add_month_form", clear_on_submit=True):
        col1, col2 = st.columns([3, 1])
        name = col1.text_input("Name", placeholder="Cardiology")
        year = col2.number_input("Year", min_value=2000, max_value=2100, value=date.today().year)
        if st.form_submit_button("Add month", type="primary"):
            if _run(store.add_month, name, int(year), success="Month added."):
                st.rerun()

    if not store.months:
        st.info("No months yet.")
        return

    for month in sort_months(store.months):
        subjects = store.subjects_by_month_id(month.id)
        progress = month_progress(month.id, store.subjects)
        with st.expander(f"{month.name} ({month.year}) · {len(subjects)} subjects · {progress}%"):
            st.progress(progress / 100)
            for subject in subjects:
                st.markdown(f"**{subject.title}** · {store.total_hours_for_subject(subject.id):.1f}h")
                for st_item in subject.subtopics:
                    checked = st.checkbox(
                        st_item.title, value=st_item.is_completed, key=f"sub_{st_item.id}"
                    )
                    if checked != st_item.is_completed:
                        _run(store.toggle_subtopic, subject.id, st_item.id)
                        st.rerun()
                new_topic = st.text_area("New subtopics (JSON or one per line)", key=f"new_topic_{subject.id}")
                c1, c2 = st.columns(2)
                if c1.button("Add subtopics", key=f"add_topic_{subject.id}"):
                    try:
                        titles = parse_subtopic_titles(new_topic)
                    except SuggestionError:
                        titles = titles_from_lines(new_topic)
                    if _run(store.add_subtopics, subject.id, titles):
                        st.rerun()
                if c2.button("Delete subject", key=f"del_subject_{subject.id}"):
                    _run(store.delete_subject, subject.id, success="Subject deleted.")
                    st.rerun()

            new_subject = st.text_input("New subject", key=f"new_subject_{month.id}")
            if st.button("Add subject", key=f"add_subject_{month.id}"):
                if _run(store.add_subject, new_subject, month.id, success="Subject added."):
                    st.rerun()

            pasted = st.text_area("Paste a syllabus answer (JSON or one title per line)", key=f"paste_{month.id}")
            if st.button("Import subjects", key=f"import_{month.id}"):
                try:
                    titles = parse_subject_titles(pasted)
                except SuggestionError:
                    titles = titles_from_lines(pasted)
                imported = _run(store.import_subjects, titles, month.id)
                if imported:
                    _queue_toast(f"{len(imported)} subjects imported.")
                    st.rerun()

            rename = st.text_input("Rename", value=month.name, key=f"rename_{month.id}")
            c1, c2, c3 = st.columns(3)
            if c1.button("Save name", key=f"save_name_{month.id}"):
                _run(store.edit_month, month.id, rename, success="Month renamed.")
                st.rerun()
            if c2.button("Duplicate", key=f"dup_{month.id}"):
                _run(store.duplicate_month, month.id, success="Month duplicated.")
                st.rerun()
            if c3.button("Delete", key=f"del_{month.id}"):

                @st.dialog("Delete month?")
                def _confirm_month_delete() -> None:
                    st.write(f"This removes '{month.name}' and its {len(subjects)} subjects.")
                    if st.button("Delete", type="primary"):
                        _run(store.delete_month, month.id, success="Month deleted.")
                        st.rerun()

                _confirm_month_delete()


def render_today(store: StudyStore) -> None:
    st.header("Today")
    today = daily_summary(to_date_key(date.today()), store.sessions)
    streaks = store.streak_stats()

    a, b, c = st.columns(3)
    a.metric("Studied today", f"{today['hours']}h {today['minutes']}m")
    b.metric("Current streak", f"{streaks.current_streak} days")
    c.metric("Longest streak", f"{streaks.longest_streak} days")

    rows = subject_shares(store.subjects, store.sessions)
    if rows:
        df = pd.DataFrame(rows)[["subject", "label", "share"]]
        st.dataframe(
            df,
            hide_index=True,
            use_container_width=True,
            column_config={
                "subject": st.column_config.TextColumn("Subject"),
                "label": st.column_config.TextColumn("Time"),
                "share": st.column_config.ProgressColumn("Share", format="%.0f%%", min_value=0, max_value=100),
            },
        )
    else:
        st.info("No subjects yet.")


def _catch_up(timer: Stopwatch | PomodoroTimer):
    """Turn wall-clock seconds since the last rerun into timer ticks."""
    now = time.monotonic()
    if not timer.is_running:
        st.session_state.tick_anchor = now
        return None
    anchor = st.session_state.get("tick_anchor", now)
    due = int(now - anchor)
    # keep the fraction for the next rerun
    st.session_state.tick_anchor = anchor + due
    return _run(advance, timer, due)


@st.fragment(run_every=1)
def _clock(timer: Stopwatch | PomodoroTimer) -> None:
    session = _catch_up(timer)
    st.subheader(timer.display)
    if session:
        _queue_toast(f"Pomodoro done, saved {format_clock(session.duration)}.")
        st.rerun()


def _start(timer: Stopwatch | PomodoroTimer) -> None:
    if timer.start():
        st.session_state.tick_anchor = time.monotonic()
    st.rerun()


def _end(timer: Stopwatch | PomodoroTimer, action) -> None:
    _catch_up(timer)
    session = _run(action)
    if session:
        _queue_toast(f"Saved {format_clock(session.duration)}.")
    st.rerun()


def render_study(store: StudyStore) -> None:
    st.header("Study")
    stopwatch: Stopwatch = st.session_state.stopwatch
    pomodoro: PomodoroTimer = st.session_state.pomodoro
    options = {s.id: s.title for s in store.subjects}
    if not options:
        st.info("Add a subject first.")
        return

    mode = st.radio(
        "Mode",
        ["Stopwatch", "Pomodoro"],
        horizontal=True,
        key="timer_mode",
        disabled=stopwatch.is_running or pomodoro.is_running,
    )
    timer = stopwatch if mode == "Stopwatch" else pomodoro

    selected = st.selectbox(
        "Subject",
        options=list(options.keys()),
        format_func=lambda sid: options[sid],
        disabled=timer.is_running,
    )
    if not timer.is_running:
        timer.select(selected)

    _clock(timer)
    if timer is pomodoro:
        st.caption(
            f"{pomodoro.length // 60} min focus, "
            f"{store.settings.short_break_duration} min break"
        )
        c1, c2, c3, c4 = st.columns(4)
        if c1.button("Start", disabled=pomodoro.is_running):
            _start(pomodoro)
        if c2.button("Pause", disabled=not pomodoro.is_running):
            _catch_up(pomodoro)
            pomodoro.pause()
            st.rerun()
        if c3.button("Finish"):
            _end(pomodoro, pomodoro.finish)
        if c4.button("Abandon"):
            _end(pomodoro, pomodoro.abandon)
    else:
        c1, c2, c3 = st.columns(3)
        if c1.button("Start", disabled=stopwatch.is_running):
            _start(stopwatch)
        if c2.button("Pause", disabled=not stopwatch.is_running):
            _catch_up(stopwatch)
            stopwatch.pause()
            st.rerun()
        if c3.button("Stop"):
            _end(stopwatch, stopwatch.stop)

    st.divider()
    st.subheader("Manual entry")
    with st.form("manual_session_form", clear_on_submit=True):
        col1, col2, col3 = st.columns(3)
        hours = col1.number_input("Hours", min_value=0, max_value=24, value=0)
        minutes = col2.number_input("Minutes", min_value=0, max_value=59, value=0)
        day = col3.date_input("Date", value=date.today())
        if st.form_submit_button("Save", type="primary"):
            total = int(hours) * 3600 + int(minutes) * 60
            if total > 0:
                _run(store.start_manual_session, selected, total, to_date_key(day), success="Session saved.")
                st.rerun()
            else:
                st.warning("Enter a duration.")


def render_schedule(store: StudyStore) -> None:
    st.header("Schedule")
    with st.form("add_schedule_month_form"):
        new_key = st.text_input("Month (YYYY-MM)", value=to_month_key(date.today()))
        if st.form_submit_button("Add month"):
            _run(store.add_active_schedule_month, new_key.strip())
            st.rerun()

    for month_key in store.active_schedule_months:
        stats = schedule_month_stats(month_key, store.schedules, store.sessions)
        with st.expander(f"{month_key} · {stats.subject_count} subjects · {round(stats.progress)}%"):
            st.progress(stats.progress / 100)
            st.caption(f"{stats.total_studied_hours:.1f}h of {stats.total_goal_hours}h")
            for subject in store.subjects:
                scheduled = store.schedule_for(subject.id, month_key) is not None
                if st.checkbox(subject.title, value=scheduled, key=f"sched_{month_key}_{subject.id}") != scheduled:
                    _run(store.toggle_subject_in_month, subject.id, month_key)
                    st.rerun()
                schedule = store.schedule_for(subject.id, month_key)
                if schedule is None:
                    continue
                goal = st.number_input(
                    "Monthly goal (h)", min_value=0, value=schedule.monthly_goal,
                    key=f"goal_{month_key}_{subject.id}",
                )
                if goal != schedule.monthly_goal:
                    _run(store.update_subject_schedule, subject.id, month_key, {"monthly_goal": int(goal)})
                    st.rerun()
                day_keys = [to_date_key(d) for d in month_days(month_key)]
                current = [d for d in schedule.planned_days if d in day_keys]
                picked = st.multiselect(
                    "Planned days", options=day_keys, default=current,
                    key=f"days_{month_key}_{subject.id}",
                )
                for day_key in set(picked) ^ set(current):
                    _run(store.toggle_subject_planned_day, subject.id, month_key, day_key)
                if set(picked) != set(current):
                    st.rerun()

            ics_bytes, warnings = planned_days_to_ics(
                store.subjects, store.schedules, month_key, store.settings
            )
            st.download_button(
                "Download ICS",
                data=ics_bytes,
                file_name=f"study_schedule_{month_key}.ics",
                mime="text/calendar",
                key=f"ics_{month_key}",
            )
            if warnings:
                st.warning(" | ".join(warnings))
            if st.button("Remove month", key=f"rm_{month_key}"):
                _run(store.remove_active_schedule_month, month_key)
                st.rerun()


def render_statistics(store: StudyStore) -> None:
    st.header("Statistics")
    month_key = st.text_input("Month (YYYY-MM)", value=to_month_key(date.today()))
    try:
        summary = month_summary(month_key, store.sessions, store.subjects, store.settings.monthly_goal_hours)
        schedule_stats = schedule_month_stats(month_key, store.schedules, store.sessions)
    except ValueError as e:
        st.warning(str(e))
        return
    streaks = store.streak_stats()

    a, b, c = st.columns(3)
    a.metric("Studied", f"{summary.hours}h {summary.minutes}m")
    b.metric("Goal progress", f"{round(summary.goal_progress)}%")
    c.metric("Active days", streaks.total_active_days)

    if summary.subjects:
        df = pd.DataFrame([s.model_dump() for s in summary.subjects[:5]]).set_index("name")
        st.bar_chart(df["hours"])

    heat = pd.DataFrame([d.model_dump() for d in heatmap_days(streaks.day_map)])
    heat["week"] = pd.to_datetime(heat["day"]).dt.to_period("W").astype(str)
    heat["weekday"] = pd.to_datetime(heat["day"]).dt.weekday
    grid = heat.pivot_table(index="weekday", columns="week", values="level", aggfunc="max")
    st.dataframe(grid, use_container_width=True)

    pdf_bytes = month_report_to_pdf(summary, schedule_stats, streaks, store.settings)
    st.download_button(
        "Download PDF",
        data=pdf_bytes,
        file_name=f"study_report_{month_key}.pdf",
        mime="application/pdf",
    )


def render_settings(store: StudyStore) -> None:
    st.header("Settings")
    settings = store.settings
    with st.form("settings_form"):
        user_name = st.text_input("Name", value=settings.user_name)
        degree = st.selectbox(
            "Degree", HEALTH_DEGREES, index=HEALTH_DEGREES.index(settings.health_degree)
        )
        final_goal = st.text_input("Final goal", value=settings.final_goal)
        pomodoro = st.slider("Pomodoro (minutes)", *POMODORO_MINUTES, settings.pomodoro_duration)
        short_break = st.slider("Short break (minutes)", *BREAK_MINUTES, settings.short_break_duration)
        monthly_goal = st.number_input("Monthly goal (hours)", min_value=0, value=settings.monthly_goal_hours)
        if st.form_submit_button("Save settings", type="primary"):
            _run(store.update_settings, {
                "user_name": user_name,
                "health_degree": degree,
                "final_goal": final_goal,
                "pomodoro_duration": int(pomodoro),
                "short_break_duration": int(short_break),
                "monthly_goal_hours": int(monthly_goal),
            }, success="Settings saved.")
            st.rerun()


store = _ensure_session_state()
current_user = st.session_state.user_id

st.title("Study Tracker")
st.caption(f"Hello, {store.settings.user_name}.")
_flush_toast()
if store.last_error:
    st.error(f"Last save failed: {store.last_error}")

with st.sidebar:
    st.header("User")
    users = list_users() or [GUEST_USER]
    if current_user not in users:
        users.append(current_user)
    selected_user = st.selectbox("Active user", options=users, index=users.index(current_user))
    if selected_user != current_user:
        _switch_user(selected_user)
        st.rerun()

    if st.button("Delete user data", disabled=current_user == GUEST_USER):

        @st.dialog("Delete user data?")
        def _confirm_delete_user() -> None:
            st.write(f"Delete all data stored for '{current_user}'?")
            if st.button("Delete", type="primary"):
                delete_user_state(current_user)
                _switch_user(GUEST_USER)
                _queue_toast("User data deleted.")
                st.rerun()

        _confirm_delete_user()

    st.divider()
    st.header("Navigate")
    pages = ["Months", "Today", "Study", "Schedule", "Statistics", "Settings"]
    page = st.radio("Page", pages, key="nav_page", label_visibility="collapsed")

if page == "Months":
    render_months(store)
elif page == "Today":
    render_today(store)
elif page == "Study":
    render_study(store)
elif page == "Schedule":
    render_schedule(store)
elif page == "Statistics":
    render_statistics(store)
elif page == "Settings":
    render_settings(store)
