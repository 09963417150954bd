"""Celery tasks module."""

from doomsettle.tasks.settlement_tasks import check_dispute_windows, run_job

__all__ = [
    "check_dispute_windows",
    "run_job",
]
