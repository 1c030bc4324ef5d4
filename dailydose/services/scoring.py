"""Session scoring for Daily Dose."""

XP_PER_CORRECT = 10
COMPLETION_BONUS_XP = 5
PERFECT_SESSION_BONUS_XP = 10


def calculate_accuracy(correct_count: int, questions_attempted: int) -> float:
    """Return the fraction of attempted questions answered correctly."""
    if questions_attempted <= 0:
        return 0.0
    return correct_count / questions_attempted


def calculate_session_xp(correct_count: int, questions_attempted: int) -> int:
    """
    Calculate XP earned for a session.

    Args:
        correct_count: Questions answered correctly across the session
        questions_attempted: Questions attempted across the session

    Returns:
        XP for correct answers plus completion and perfect-session bonuses
    """
    if questions_attempted <= 0:
        return 0

    xp = correct_count * XP_PER_CORRECT + COMPLETION_BONUS_XP
    if correct_count == questions_attempted:
        xp += PERFECT_SESSION_BONUS_XP
    return xp
