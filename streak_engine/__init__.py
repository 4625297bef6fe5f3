"""
Confidential streak engine

Privacy-first daily streaks: only THAT an activity happened is tracked,
never WHAT was said.
"""

__version__ = "1.0.0"
