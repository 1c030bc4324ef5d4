"""Review models for Daily Dose learning sessions."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, model_validator

from .base import CamelModel


class ReviewState(CamelModel):
    """Leitner state for one user and one learning card."""

    box: int = Field(default=1, ge=1, description="Leitner box index")
    interval_days: int = Field(default=0, ge=0, description="Days until next due")
    due_at: datetime
    correct_streak: int = Field(default=0, ge=0)
    incorrect_streak: int = Field(default=0, ge=0)
    last_reviewed_at: Optional[datetime] = None


class CardResult(CamelModel):
    """Outcome of one card within a completed session."""

    card_id: str = Field(..., min_length=1)
    correct_count: int = Field(..., ge=0)
    question_count: int = Field(..., ge=0)

    @model_validator(mode="after")
    def check_counts(self):
        if self.correct_count > self.question_count:
            raise ValueError("correctCount cannot exceed questionCount")
        return self


class SessionCompleteRequest(CamelModel):
    """Request model for completing a learning session."""

    session_id: str = Field(..., min_length=1)
    surgery_id: Optional[str] = None
    card_results: List[CardResult] = Field(..., min_length=1)


class CardStateUpdate(CamelModel):
    """Next review state to persist for one card."""

    card_id: str
    state: ReviewState
    created: bool = Field(..., description="True when no previous state existed")
    passed: bool


class SessionCompletion(CamelModel):
    """Everything the persistence layer must write for one session."""

    completed_at: datetime
    questions_attempted: int
    correct_count: int
    accuracy: float
    xp_earned: int
    card_states: List[CardStateUpdate]


class SessionCard(CamelModel):
    """A learning card eligible for a session."""

    card_id: str
    batch_id: Optional[str] = None
