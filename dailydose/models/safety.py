"""Safety models for Daily Dose editorial content."""

from typing import List, Literal, Optional

from pydantic import Field

from .base import CamelModel
from .generation import RiskLevel


AdminIssueCode = Literal[
    "FORBIDDEN_PATTERN",
    "FORBIDDEN_SOURCE",
    "MISSING_SLOT_GUIDANCE",
    "MISSING_TOOLKIT_SOURCE",
]


class AdminValidationIssue(CamelModel):
    """A rule violation found in admin-facing content."""

    code: AdminIssueCode
    message: str
    card_title: Optional[str] = None


class SafetyFinding(CamelModel):
    """Safety metadata derived from a card's content."""

    risk_level: RiskLevel
    needs_sourcing: bool
    requires_clinician_approval: bool
    violations: List[AdminValidationIssue] = Field(default_factory=list)
