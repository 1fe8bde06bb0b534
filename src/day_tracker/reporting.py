"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from datetime import date, timedelta
from pathlib import Path
from typing import Iterable

from .analytics import group_activities
from .config import load_settings
from .db import database_connection, fetch_activities_for_day, fetch_breaks_for_day
from .models import EndedBreak
from .workday import Workday, replay_workday


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def print_daily_summary(self, day: date) -> None:
        with database_connection(self.db_path) as conn:
            settings = load_settings(conn)
            activities = fetch_activities_for_day(conn, day)
            breaks = fetch_breaks_for_day(conn, day)
        if not activities and not breaks:
            print("No activity recorded for the selected day.")
            return

        workday = replay_workday(day, settings.workday_definition, activities, breaks)
        print(f"Summary for {day.isoformat()}")
        print("-" * 40)
        for label, value in workday_lines(workday):
            print(f"{label:<28} {format_duration(value)}")

        groups = group_activities(activities, breaks)
        if groups:
            print()
            print("Top activities:")
            for group in groups[:5]:
                print(f"  {group.description[:40]:<40} {format_duration(group.duration)}")

    def print_breaks(self, day: date) -> None:
        with database_connection(self.db_path) as conn:
            breaks = fetch_breaks_for_day(conn, day)
        if not breaks:
            print("No breaks recorded for the selected day.")
            return
        for line in break_lines(breaks):
            print(line)


def workday_lines(workday: Workday) -> list[tuple[str, timedelta]]:
    return [
        ("Actively worked:", workday.time_already_actively_worked),
        ("Left to work actively:", workday.time_left_to_work_actively),
        ("Overall left to work:", workday.overall_time_left_to_work),
        ("Overhours:", workday.overhours_time),
        ("Breaks taken:", workday.time_of_all_breaks),
        ("Break time left:", workday.break_time_left),
        ("Valid break time used:", workday.valid_break_time_used),
    ]


def break_lines(breaks: Iterable[EndedBreak]) -> list[str]:
    lines = []
    for item in breaks:
        status = f"revoked {item.revoked_at:%H:%M}" if item.revoked_at else "valid"
        lines.append(
            f"{item.id}  {item.started_at:%H:%M:%S}-{item.ended_at:%H:%M:%S}  "
            f"{format_duration(item.break_duration)}  {item.description} ({status})"
        )
    return lines


def format_duration(value: timedelta) -> str:
    total_seconds = int(round(value.total_seconds()))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
