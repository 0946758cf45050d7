"""Gong Notifier - GoCD stage notifications with fixed/broken detection."""

__version__ = "0.1.0"
