"""Review session orchestration."""

from spaced_review.session.controller import (
    ReviewSessionController,
    ScoreOutcome,
    SessionPhase,
    SessionSummary,
)

__all__ = [
    "ReviewSessionController",
    "ScoreOutcome",
    "SessionPhase",
    "SessionSummary",
]
