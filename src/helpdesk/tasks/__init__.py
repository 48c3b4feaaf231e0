"""Celery tasks for background processing.

This module provides async task execution for:
- Overdue ticket detection
- Auto-closing unconfirmed tickets
"""

from helpdesk.core.celery_app import celery_app

__all__ = ["celery_app"]
