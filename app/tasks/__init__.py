"""Celery tasks package."""

from app.tasks import quota

__all__ = ["quota"]
