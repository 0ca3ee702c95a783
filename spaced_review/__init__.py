"""
spaced-review - spaced-repetition review engine for language learning.

Schedules vocabulary cards and test questions, buckets them into due
queues, and summarizes review history into performance metrics.
"""

__version__ = "1.0.0"
