"""Utility modules for the chat cache."""

from .periodic import PeriodicTask

__all__ = ["PeriodicTask"]
