"""Shared utilities."""

from .background import (
    drain_background_tasks,
    fire_and_forget,
    pending_count,
    wait_for_background,
)

__all__ = [
    "fire_and_forget",
    "drain_background_tasks",
    "pending_count",
    "wait_for_background",
]
