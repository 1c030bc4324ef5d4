"""Safety policy data for editorial content checks.

The lists here are policy, not algorithm. Every guard takes an optional
SafetyPolicy so a practice or a test can supply its own.
"""

import os
from dataclasses import dataclass, field
from typing import Tuple

DEFAULT_TOOLKIT_BASE_URL = "https://app.signpostingtool.co.uk/toolkit"
TOOLKIT_SOURCE_TITLE = "Signposting Toolkit (internal)"
TOOLKIT_SOURCE_PUBLISHER = "Signposting Toolkit"

# Escalation and crisis language that always makes a card HIGH risk
RISK_PATTERNS: Tuple[str, ...] = (
    r"chest pain",
    r"\bcollaps",
    r"\bunconscious",
    r"not breathing",
    r"(difficulty|struggling) breathing",
    r"\bsuicid",
    r"self[- ]?harm",
    r"\boverdose",
    r"\banaphyla",
    r"\bstroke\b",
    r"\bsepsis\b",
    r"\bseizure",
    r"kill (myself|themselves|himself|herself)",
    r"end (my|their|his|her) life",
)

UK_AUTHORITY_DOMAINS: Tuple[str, ...] = (
    "nhs.uk",
    "nice.org.uk",
    "gov.uk",
    "gmc-uk.org",
    "nmc.org.uk",
    "rcgp.org.uk",
    "rcn.org.uk",
    "sign.ac.uk",
)

TOOLKIT_RELATIVE_PREFIXES: Tuple[str, ...] = ("/s/", "/symptom/")

# Clinical instruments and clinician-only language, as (regex, label)
ADMIN_FORBIDDEN_PATTERNS: Tuple[Tuple[str, str], ...] = (
    (r"risk assessment", "risk assessment"),
    (r"protective factors", "protective factors"),
    (r"sigecaps", "SIGECAPS"),
    (r"phq-?9", "PHQ-9"),
    (r"gad-?7", "GAD-7"),
    (r"columbia", "Columbia"),
    (r"rcgp", "RCGP"),
    (r"\bdiagnos(e|is|ing)?\b", "diagnose"),
    (r"\bdifferentials?\b", "differential"),
    (r"titrate", "titrate"),
    (r"medication", "medication"),
)

ADMIN_FORBIDDEN_SOURCE_TERMS: Tuple[str, ...] = ("rcgp",)

# Wording that means slot guidance is expected
TRIAGE_PATTERNS: Tuple[str, ...] = (
    r"\btriage",
    r"\bslots?\b",
    r"\bbooking",
    r"\bsame[- ]day\b",
    r"\burgent",
    r"\bred\b",
    r"\borange\b",
    r"\bpink\b",
    r"\bpurple\b",
    r"\bgreen\b",
    r"\bescalat",
    r"\b999\b",
    r"\b111\b",
    r"\bduty gp\b",
    r"\bhandover\b",
    r"\bsignposting\b",
)


def _toolkit_base_url() -> str:
    # an empty value falls back to the default
    return os.environ.get("ADMIN_TOOLKIT_BASE_URL", "").strip() or DEFAULT_TOOLKIT_BASE_URL


@dataclass(frozen=True)
class SafetyPolicy:
    """Keyword lists and allow-lists used by the content safety guard."""

    risk_patterns: Tuple[str, ...] = RISK_PATTERNS
    uk_authority_domains: Tuple[str, ...] = UK_AUTHORITY_DOMAINS
    toolkit_relative_prefixes: Tuple[str, ...] = TOOLKIT_RELATIVE_PREFIXES
    toolkit_base_url: str = field(default_factory=_toolkit_base_url)
    forbidden_patterns: Tuple[Tuple[str, str], ...] = ADMIN_FORBIDDEN_PATTERNS
    forbidden_source_terms: Tuple[str, ...] = ADMIN_FORBIDDEN_SOURCE_TERMS
    triage_patterns: Tuple[str, ...] = TRIAGE_PATTERNS

    def is_toolkit_url(self, url: str) -> bool:
        """True if the URL points into the toolkit. An empty base URL matches nothing."""
        return bool(self.toolkit_base_url) and url.startswith(self.toolkit_base_url)
