"""Extra content rules for cards aimed at non-clinical admin staff."""

import re
from typing import List, Optional

from ..models.generation import LearningCard, Source
from ..models.safety import AdminValidationIssue
from .card_text import combine_card_text
from .policy import SafetyPolicy


def has_triage_signals(text: str, policy: Optional[SafetyPolicy] = None) -> bool:
    """True if the text talks about triage, slots, booking or escalation."""
    policy = policy or SafetyPolicy()
    return any(re.search(pattern, text, re.IGNORECASE) for pattern in policy.triage_patterns)


def is_toolkit_source(source: Source, policy: SafetyPolicy) -> bool:
    """A toolkit citation links to the toolkit itself or to practice-internal content."""
    if source.url is None:
        return True
    if source.url.startswith(policy.toolkit_relative_prefixes):
        return True
    return policy.is_toolkit_url(source.url)


def validate_admin_cards(
    cards: List[LearningCard],
    prompt_text: str,
    policy: Optional[SafetyPolicy] = None,
) -> List[AdminValidationIssue]:
    """
    Check admin cards against the stricter admin content rules.

    Args:
        cards: Validated learning cards.
        prompt_text: The brief the cards were generated from.
        policy: Optional policy overriding the default pattern lists.

    Returns:
        Every violation found, in card order. Empty when all cards pass.
    """
    policy = policy or SafetyPolicy()
    issues: List[AdminValidationIssue] = []
    prompt_has_triage_signals = has_triage_signals(prompt_text, policy)

    for card in cards:
        combined = combine_card_text(card)

        for pattern, label in policy.forbidden_patterns:
            if re.search(pattern, combined, re.IGNORECASE):
                issues.append(
                    AdminValidationIssue(
                        code="FORBIDDEN_PATTERN",
                        message=f"Forbidden content detected: {label}",
                        card_title=card.title,
                    )
                )

        if not any(is_toolkit_source(source, policy) for source in card.sources):
            issues.append(
                AdminValidationIssue(
                    code="MISSING_TOOLKIT_SOURCE",
                    message="Sources must include a Signposting Toolkit (internal) citation.",
                    card_title=card.title,
                )
            )

        for source in card.sources:
            url = (source.url or "").lower()
            if any(term in url for term in policy.forbidden_source_terms):
                issues.append(
                    AdminValidationIssue(
                        code="FORBIDDEN_SOURCE",
                        message=f"Source not allowed for admin cards: {source.title}",
                        card_title=card.title,
                    )
                )

        needs_slot_guidance = prompt_has_triage_signals or has_triage_signals(combined, policy)
        has_slot_guidance = card.slot_language.relevant and len(card.slot_language.guidance) > 0
        if needs_slot_guidance and not has_slot_guidance:
            issues.append(
                AdminValidationIssue(
                    code="MISSING_SLOT_GUIDANCE",
                    message="Slot guidance required for triage-related scenarios.",
                    card_title=card.title,
                )
            )

    return issues
