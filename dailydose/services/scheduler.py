"""Leitner box spaced repetition scheduler."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional


@dataclass
class ReviewResult:
    """Result of applying one review outcome."""

    box: int
    interval_days: int
    due_at: datetime
    correct_streak: int
    incorrect_streak: int


# Highest Leitner box a card can be promoted to
MAX_BOX = 5

# Days until the card is due again, keyed by the box it lands in
BOX_INTERVAL_DAYS: Dict[int, int] = {
    1: 1,
    2: 3,
    3: 7,
    4: 14,
    5: 30,
}

# Fraction of a card's questions that must be right for the card to pass
CARD_CORRECT_THRESHOLD = 0.7


def validate_intervals(intervals: Dict[int, int]) -> None:
    """Check an interval schedule covers every box and strictly increases.

    Raises:
        ValueError: If a box is missing or the schedule does not increase.
    """
    previous = 0
    for box in range(1, MAX_BOX + 1):
        if box not in intervals:
            raise ValueError(f"Interval schedule is missing box {box}")
        if intervals[box] <= previous:
            raise ValueError(
                f"Interval for box {box} must be greater than {previous}, got {intervals[box]}"
            )
        previous = intervals[box]


def apply_review_outcome(
    current_box: int,
    correct: bool,
    now: datetime,
    correct_streak: int = 0,
    incorrect_streak: int = 0,
    intervals: Optional[Dict[int, int]] = None,
) -> ReviewResult:
    """
    Calculate the next Leitner state for a card.

    A correct answer promotes the card one box (capped at MAX_BOX). An
    incorrect answer sends it straight back to box 1. The interval is looked
    up from the box the card lands in, so it depends on nothing else.

    A card that has never been reviewed is passed as box 1 with zero streaks.

    Args:
        current_box: Box the card is in before this review (>= 1)
        correct: Whether the card was answered correctly
        now: Review timestamp; the due date is computed from it
        correct_streak: Consecutive correct reviews so far
        incorrect_streak: Consecutive incorrect reviews so far
        intervals: Optional box -> days schedule overriding BOX_INTERVAL_DAYS

    Returns:
        ReviewResult with updated parameters

    Raises:
        ValueError: If the box or streaks are out of range
    """
    if current_box < 1:
        raise ValueError(f"Box must be at least 1, got {current_box}")
    if correct_streak < 0 or incorrect_streak < 0:
        raise ValueError(
            f"Streaks must be non-negative, got {correct_streak} and {incorrect_streak}"
        )

    if intervals is None:
        intervals = BOX_INTERVAL_DAYS
    else:
        validate_intervals(intervals)

    if correct:
        new_box = min(current_box + 1, MAX_BOX)
        new_correct_streak = correct_streak + 1
        new_incorrect_streak = 0
    else:
        new_box = 1
        new_correct_streak = 0
        new_incorrect_streak = incorrect_streak + 1

    interval_days = intervals[new_box]

    return ReviewResult(
        box=new_box,
        interval_days=interval_days,
        due_at=now + timedelta(days=interval_days),
        correct_streak=new_correct_streak,
        incorrect_streak=new_incorrect_streak,
    )


def is_card_correct(
    correct_count: int,
    question_count: int,
    threshold: float = CARD_CORRECT_THRESHOLD,
) -> bool:
    """
    Decide whether a card counts as passed for promotion.

    Args:
        correct_count: Questions on the card answered correctly
        question_count: Questions on the card attempted
        threshold: Minimum accuracy ratio, in (0, 1]

    Returns:
        True if at least one question was attempted and accuracy meets threshold

    Raises:
        ValueError: If counts are negative or threshold is out of range
    """
    if correct_count < 0 or question_count < 0:
        raise ValueError("Counts must be non-negative")
    if not 0 < threshold <= 1:
        raise ValueError(f"Threshold must be in (0, 1], got {threshold}")

    if question_count == 0:
        return False
    return correct_count / question_count >= threshold
