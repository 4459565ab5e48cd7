"""Habit journey: progression and scheduling engine"""

__version__ = "1.0.0"
