from __future__ import annotations
from io import BytesIO
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from models import Settings
from stats import MonthSummary, ScheduleMonthStats, StreakStats


def month_report_to_pdf(
    summary: MonthSummary,
    schedule_stats: ScheduleMonthStats,
    streaks: StreakStats,
    settings: Settings,
) -> bytes:
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=letter,
        leftMargin=40,
        rightMargin=40,
        topMargin=40,
        bottomMargin=40,
    )
    styles = getSampleStyleSheet()
    elems = []

    elems.append(Paragraph(f"Study Report: {summary.month_key}", styles["Title"]))
    elems.append(Spacer(1, 10))
    elems.append(Paragraph(
        f"{settings.user_name} | {settings.health_degree}"
        + (f" | Goal: {settings.final_goal}" if settings.final_goal else ""),
        styles["Normal"],
    ))
    elems.append(Paragraph(
        f"Studied: {summary.hours}h {summary.minutes}m "
        f"| Monthly goal: {settings.monthly_goal_hours}h "
        f"| Progress: {round(summary.goal_progress)}%",
        styles["Normal"],
    ))
    elems.append(Paragraph(
        f"Current streak: {streaks.current_streak} days "
        f"| Longest streak: {streaks.longest_streak} days "
        f"| Active days: {streaks.total_active_days}",
        styles["Normal"],
    ))
    elems.append(Spacer(1, 12))

    if schedule_stats.subject_count:
        elems.append(Paragraph("Schedule", styles["Heading3"]))
        schedule_table = Table([
            ["Subjects", "Goal (h)", "Studied (h)", "Progress"],
            [
                str(schedule_stats.subject_count),
                str(schedule_stats.total_goal_hours),
                f"{schedule_stats.total_studied_hours:.1f}",
                f"{round(schedule_stats.progress)}%",
            ],
        ], hAlign="LEFT")
        schedule_table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ("ALIGN", (0, 1), (-1, -1), "RIGHT"),
        ]))
        elems.append(schedule_table)
        elems.append(Spacer(1, 12))

    elems.append(Paragraph("By subject", styles["Heading3"]))
    if not summary.subjects:
        elems.append(Paragraph("No completed sessions this month.", styles["Normal"]))
    else:
        table_data = [["Subject", "Sessions", "Hours"]]
        for stat in summary.subjects:
            table_data.append([stat.name, str(stat.count), f"{stat.hours:.1f}"])
        table_data.append([
            "Total",
            str(sum(s.count for s in summary.subjects)),
            f"{summary.total_seconds / 3600:.1f}",
        ])
        table = Table(table_data, hAlign="LEFT", colWidths=[260, 70, 70])
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ("BACKGROUND", (0, -1), (-1, -1), colors.whitesmoke),
            ("ALIGN", (1, 1), (2, -1), "RIGHT"),
        ]))
        elems.append(table)

    doc.build(elems)
    return buf.getvalue()
