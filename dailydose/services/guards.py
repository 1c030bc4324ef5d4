"""Content safety guard for generated and edited learning cards."""

import re
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

from ..models.generation import LearningCard, RiskLevel
from ..models.safety import SafetyFinding
from .admin_validator import validate_admin_cards
from .card_text import combine_card_text
from .policy import SafetyPolicy


def infer_risk_level(combined_text: str, policy: Optional[SafetyPolicy] = None) -> RiskLevel:
    """Return HIGH if the text contains escalation or crisis language, else LOW."""
    policy = policy or SafetyPolicy()
    for pattern in policy.risk_patterns:
        if re.search(pattern, combined_text, re.IGNORECASE):
            return "HIGH"
    return "LOW"


def combine_risk_level(declared: RiskLevel, inferred: RiskLevel) -> RiskLevel:
    """Keep the editor's risk level unless either side says HIGH."""
    if declared == "HIGH" or inferred == "HIGH":
        return "HIGH"
    return declared


def _source_url(source: Any) -> Optional[str]:
    if isinstance(source, dict):
        return source.get("url")
    return getattr(source, "url", None)


def is_recognised_source_url(url: Optional[str], policy: Optional[SafetyPolicy] = None) -> bool:
    """True for UK authority domains and the toolkit's own pages."""
    if not url:
        return False
    policy = policy or SafetyPolicy()
    if url.startswith(policy.toolkit_relative_prefixes):
        return True
    if policy.is_toolkit_url(url):
        return True

    host = (urlparse(url).hostname or "").lower()
    if not host:
        return False
    return any(
        host == domain or host.endswith("." + domain)
        for domain in policy.uk_authority_domains
    )


def resolve_needs_sourcing(
    sources: Iterable[Any],
    declared_needs_sourcing: bool,
    manually_verified: bool = False,
    policy: Optional[SafetyPolicy] = None,
) -> bool:
    """
    Decide whether a card still needs sourcing before it can be published.

    Args:
        sources: Source models or dicts with an optional 'url'.
        declared_needs_sourcing: The value the editor or model declared.
        manually_verified: The calling workflow confirmed a human checked
            the sources; only then is a declared False trusted on its own.
        policy: Optional policy overriding the default allow-lists.

    Returns:
        False if a source is recognised (or verified and declared False),
        otherwise True. An empty source list is always True.
    """
    sources = list(sources)
    if not sources:
        return True
    policy = policy or SafetyPolicy()
    if any(is_recognised_source_url(_source_url(source), policy) for source in sources):
        return False
    if manually_verified:
        return declared_needs_sourcing
    return True


def should_require_clinician_approval(risk_level: RiskLevel) -> bool:
    """HIGH risk content cannot be published without clinician sign-off."""
    return risk_level == "HIGH"


def evaluate_card_safety(
    card: LearningCard,
    prompt_text: Optional[str] = None,
    manually_verified: bool = False,
    policy: Optional[SafetyPolicy] = None,
) -> SafetyFinding:
    """Derive risk, sourcing and admin rule findings for one card."""
    inferred = infer_risk_level(combine_card_text(card), policy)
    risk_level = combine_risk_level(card.risk_level, inferred)

    violations = []
    if card.target_role == "ADMIN":
        violations = validate_admin_cards([card], prompt_text or "", policy)

    return SafetyFinding(
        risk_level=risk_level,
        needs_sourcing=resolve_needs_sourcing(
            card.sources, card.needs_sourcing, manually_verified, policy
        ),
        requires_clinician_approval=should_require_clinician_approval(risk_level),
        violations=violations,
    )
