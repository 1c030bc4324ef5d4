"""Session completion planning for Daily Dose reviews."""

import os
from datetime import datetime
from typing import List, Mapping, Optional

from aws_lambda_powertools import Logger

from ..models.review import CardResult, CardStateUpdate, ReviewState, SessionCompletion
from .scheduler import CARD_CORRECT_THRESHOLD, apply_review_outcome, is_card_correct
from .scoring import calculate_accuracy, calculate_session_xp

logger = Logger()


def get_card_correct_threshold() -> float:
    """Read the per-card pass threshold from the environment.

    Falls back to CARD_CORRECT_THRESHOLD when the value is not a number
    in (0, 1].
    """
    raw = os.environ.get("DAILY_DOSE_CARD_CORRECT_THRESHOLD")
    if raw is None or raw.strip() == "":
        return CARD_CORRECT_THRESHOLD
    try:
        threshold = float(raw)
    except ValueError:
        logger.warning(
            f"Invalid DAILY_DOSE_CARD_CORRECT_THRESHOLD {raw!r}, using {CARD_CORRECT_THRESHOLD}"
        )
        return CARD_CORRECT_THRESHOLD
    if not 0 < threshold <= 1:
        logger.warning(
            f"DAILY_DOSE_CARD_CORRECT_THRESHOLD {threshold} is outside (0, 1], "
            f"using {CARD_CORRECT_THRESHOLD}"
        )
        return CARD_CORRECT_THRESHOLD
    return threshold


def next_review_state(
    existing: Optional[ReviewState],
    correct: bool,
    now: datetime,
) -> ReviewState:
    """Apply one outcome to a card's stored state, or to a fresh one."""
    result = apply_review_outcome(
        current_box=existing.box if existing else 1,
        correct=correct,
        now=now,
        correct_streak=existing.correct_streak if existing else 0,
        incorrect_streak=existing.incorrect_streak if existing else 0,
    )
    return ReviewState(
        box=result.box,
        interval_days=result.interval_days,
        due_at=result.due_at,
        correct_streak=result.correct_streak,
        incorrect_streak=result.incorrect_streak,
        last_reviewed_at=now,
    )


def complete_session(
    card_results: List[CardResult],
    existing_states: Mapping[str, ReviewState],
    now: datetime,
    threshold: Optional[float] = None,
) -> SessionCompletion:
    """Plan every write needed to complete a session.

    Nothing is persisted here. The caller writes the session totals and all
    card states in a single transaction so that either every card moves or
    none does.

    Args:
        card_results: Per-card question counts from the session.
        existing_states: Stored review state keyed by card ID.
        now: Completion timestamp.
        threshold: Per-card pass ratio; defaults to the configured threshold.

    Returns:
        SessionCompletion with totals and the next state for every card.

    Raises:
        ValueError: If there are no results or a card appears twice.
    """
    if not card_results:
        raise ValueError("A session needs at least one card result")

    if threshold is None:
        threshold = get_card_correct_threshold()

    seen = set()
    for result in card_results:
        if result.card_id in seen:
            raise ValueError(f"Duplicate result for card: {result.card_id}")
        seen.add(result.card_id)

    questions_attempted = sum(result.question_count for result in card_results)
    correct_count = sum(result.correct_count for result in card_results)

    updates: List[CardStateUpdate] = []
    for result in card_results:
        passed = is_card_correct(result.correct_count, result.question_count, threshold)
        existing = existing_states.get(result.card_id)
        updates.append(
            CardStateUpdate(
                card_id=result.card_id,
                state=next_review_state(existing, passed, now),
                created=existing is None,
                passed=passed,
            )
        )

    completion = SessionCompletion(
        completed_at=now,
        questions_attempted=questions_attempted,
        correct_count=correct_count,
        accuracy=calculate_accuracy(correct_count, questions_attempted),
        xp_earned=calculate_session_xp(correct_count, questions_attempted),
        card_states=updates,
    )
    logger.info(
        f"Planned session completion: {len(updates)} cards, "
        f"{correct_count}/{questions_attempted} correct, {completion.xp_earned} XP"
    )
    return completion
