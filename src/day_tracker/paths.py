"""Helpers for locating application directories."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs


APP_NAME = "DayTracker"
APP_AUTHOR = "DayTracker"
# Points every file at one directory, e.g. for a portable install.
HOME_ENV_VAR = "DAY_TRACKER_HOME"


def get_data_dir() -> Path:
    """Return the directory holding the database and log file.

    ``DAY_TRACKER_HOME`` wins over the per-user platform directory.
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        path = Path(override).expanduser()
    else:
        path = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True).user_data_path
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    return get_data_dir() / "day_tracker.sqlite3"


def get_log_path() -> Path:
    return get_data_dir() / "day_tracker.log"
