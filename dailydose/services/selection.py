"""Card selection for Daily Dose sessions."""

from datetime import datetime
from typing import Dict, List, Mapping

from ..models.review import ReviewState, SessionCard

CARDS_PER_SESSION_DEFAULT = 5
CARDS_PER_SESSION_MIN = 1
CARDS_PER_SESSION_MAX = 10

# Cards not seen for this many days become eligible for warm-up recall
RECALL_ELIGIBILITY_DAYS = 7

_NO_BATCH = "no-batch"


def _unique(cards: List[SessionCard]) -> List[SessionCard]:
    seen = set()
    unique = []
    for card in cards:
        if card.card_id not in seen:
            seen.add(card.card_id)
            unique.append(card)
    return unique


def select_session_cards(
    eligible_cards: List[SessionCard],
    card_states: Mapping[str, ReviewState],
    now: datetime,
    target_count: int = CARDS_PER_SESSION_DEFAULT,
) -> List[SessionCard]:
    """
    Pick the cards for a session, keeping a learning batch together if possible.

    Priority is due cards, then cards never seen, then cards with a current
    incorrect streak. A batch that can fill the session on its own wins;
    otherwise the largest batch is used and the rest is topped up.

    Args:
        eligible_cards: Published cards the learner may see
        card_states: Stored review state keyed by card ID
        now: Current time, used to decide which cards are due
        target_count: Requested session size, clamped to the allowed range

    Returns:
        Selected cards without duplicates, at most the clamped count
    """
    count = max(CARDS_PER_SESSION_MIN, min(CARDS_PER_SESSION_MAX, target_count))
    if not eligible_cards:
        return []

    due_cards = [
        card for card in eligible_cards
        if card.card_id in card_states and card_states[card.card_id].due_at <= now
    ]
    new_cards = [card for card in eligible_cards if card.card_id not in card_states]
    struggling_cards = [
        card for card in eligible_cards
        if card.card_id in card_states and card_states[card.card_id].incorrect_streak > 0
    ]
    priority_cards = _unique(due_cards + new_cards + struggling_cards)

    by_batch: Dict[str, List[SessionCard]] = {}
    for card in priority_cards:
        by_batch.setdefault(card.batch_id or _NO_BATCH, []).append(card)

    selected: List[SessionCard] = []
    for batch_id, batch_cards in by_batch.items():
        if batch_id != _NO_BATCH and len(batch_cards) >= count:
            selected = batch_cards[:count]
            break

    if not selected:
        batches = [cards for batch_id, cards in by_batch.items() if batch_id != _NO_BATCH]
        if batches:
            selected = max(batches, key=len)[:count]

    for pool in (priority_cards, eligible_cards):
        if len(selected) >= count:
            break
        chosen = {card.card_id for card in selected}
        extra = [card for card in pool if card.card_id not in chosen]
        selected = selected + extra[: count - len(selected)]

    return selected[:count]


def select_warmup_recall_cards(
    eligible_cards: List[SessionCard],
    card_states: Mapping[str, ReviewState],
    now: datetime,
    max_count: int = 2,
) -> List[SessionCard]:
    """
    Pick up to max_count previously reviewed cards for a warm-up recall.

    A card qualifies if it has a current incorrect streak or has not been
    reviewed for RECALL_ELIGIBILITY_DAYS. Higher incorrect streaks come
    first, then the longest-unseen cards.
    """
    candidates = []
    for card in eligible_cards:
        state = card_states.get(card.card_id)
        if state is None:
            continue
        if state.incorrect_streak > 0:
            candidates.append((card, state))
            continue
        if state.last_reviewed_at is not None:
            days_since = (now - state.last_reviewed_at).days
            if days_since >= RECALL_ELIGIBILITY_DAYS:
                candidates.append((card, state))

    def sort_key(item):
        _, state = item
        # never-reviewed timestamps sort after known ones
        reviewed = state.last_reviewed_at
        return (
            -state.incorrect_streak,
            reviewed is None,
            reviewed.timestamp() if reviewed else 0.0,
        )

    candidates.sort(key=sort_key)
    return [card for card, _ in candidates[:max_count]]
