"""Persistent storage for goals, suggestions and tickets."""

from .store import AcceptIntent, SchedulerStore

__all__ = ["AcceptIntent", "SchedulerStore"]
