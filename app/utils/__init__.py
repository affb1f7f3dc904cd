"""Utility helpers package."""

from app.utils.timeutils import ensure_utc, next_day_start, next_month_start, utcnow

__all__ = ["ensure_utc", "next_day_start", "next_month_start", "utcnow"]
