"""
Gong Notifier - Core Package
============================

Configuration, schemas, errors and the notification core.
"""

from gong_notifier.core.config import settings

__all__ = ["settings"]
