"""Error types raised by the time accounting core."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for all validation failures raised by the tracker."""


class InvalidInterval(TrackerError, ValueError):
    """A time period whose end lies before its start."""


class InvalidArgument(TrackerError, ValueError):
    """A required value was missing or inconsistent with earlier input."""


class InvalidBreakEnd(TrackerError, ValueError):
    """A break cannot end before it started or on a different day."""


class BreakNotFound(TrackerError, LookupError):
    """The break to revoke is not (or no longer) among the ended breaks."""
