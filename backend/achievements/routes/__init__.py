"""Aggregate import for all API route modules."""

from . import (
    auth,
    users,
    students,
    attempts,
    badges,
    rankings,
    settings,
)

__all__ = [
    "auth",
    "users",
    "students",
    "attempts",
    "badges",
    "rankings",
    "settings",
]
