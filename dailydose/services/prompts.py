"""Prompt templates for AI learning card generation."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..models.generation import TargetRole
from ..models.safety import AdminValidationIssue
from .policy import SafetyPolicy, TOOLKIT_SOURCE_PUBLISHER, TOOLKIT_SOURCE_TITLE


@dataclass(frozen=True)
class RoleProfile:
    """Who a card is written for and what it may contain."""

    role: TargetRole
    audience: str
    tone: str
    allowed_content: Sequence[str]
    disallowed_content: Sequence[str]
    sourcing_guidance: Sequence[str]


ROLE_PROFILES: Dict[str, RoleProfile] = {
    "ADMIN": RoleProfile(
        role="ADMIN",
        audience="Reception and admin teams (non-clinical).",
        tone="Short, direct, checklist-like.",
        allowed_content=(
            "Plain-language recognition of red flags without clinical labels.",
            "Exact scripts for questions the toolkit expects admin staff to ask.",
            "Slot choice guidance using Red / Orange / Pink-Purple / Green.",
            "Escalation steps: 999, duty GP, same-day clinician, safeguarding lead.",
            "Documentation, messaging, and safe handover steps.",
            "Safety netting thresholds and when to override booking rules.",
        ),
        disallowed_content=(
            "Naming conditions or making clinical judgments.",
            "Clinical risk scales or frameworks.",
            "Management plans beyond process escalation.",
            "Prescribing or treatment advice.",
            "Clinical safety plans or counselling.",
        ),
        sourcing_guidance=(
            "Primary authority is Signposting Toolkit (internal).",
            "Only use NHS/NICE for safety-netting wording when needed.",
        ),
    ),
    "GP": RoleProfile(
        role="GP",
        audience="GPs and prescribers (clinically trained).",
        tone="Clinical, precise, evidence-led.",
        allowed_content=(
            "Assessment frameworks and clinical reasoning where relevant.",
            "Management and safety guidance within GP scope.",
            "Decision thresholds and escalation pathways.",
        ),
        disallowed_content=(
            "Non-evidence-based claims.",
            "Advice outside UK guidance or scope.",
        ),
        sourcing_guidance=("Use authoritative UK clinical sources (NICE, NHS, RCGP, GMC).",),
    ),
    "NURSE": RoleProfile(
        role="NURSE",
        audience="Practice nurses and HCAs (clinical but non-prescribing).",
        tone="Clear, practical, and within scope.",
        allowed_content=(
            "Assessment prompts and escalation within nursing scope.",
            "Care navigation and safety advice aligned to practice policy.",
            "When to involve a GP or senior clinician.",
        ),
        disallowed_content=(
            "Prescribing instructions or medication changes.",
            "Advice outside nursing scope or local policy.",
        ),
        sourcing_guidance=("Use authoritative UK clinical sources (NICE, NHS, RCGP).",),
    ),
}


@dataclass(frozen=True)
class ToolkitPack:
    """Toolkit content route chosen by keywords in the brief."""

    pack_id: str
    keywords: Sequence[str]
    source_route: str


TOOLKIT_PACKS = (
    ToolkitPack(
        pack_id="admin-mental-health",
        keywords=("mental health", "suicide", "suicidal", "self-harm", "self harm", "crisis", "overdose"),
        source_route="mental-health-crisis",
    ),
)

DEFAULT_TOOLKIT_ROUTE = "admin-core"


OUTPUT_RULES = """OUTPUT RULES:
- Output MUST be valid JSON only. No prose, no markdown, no code fences.
- Follow the JSON schema exactly.
- Use British English spelling."""

SHARED_CONTENT_RULES = """CONTENT RULES:
- Use triage slot language where relevant: Red / Orange / Pink-Purple / Green.
- If high-risk content is present, mark riskLevel HIGH.
- Every card must include at least one interaction with an explanation."""

GENERAL_SOURCE_RULES = """SOURCES:
- Provide UK sources where possible (NHS, NICE, UKHSA, MHRA, GMC, RCGP, gov.uk).
- If you cannot provide a reliable UK source, set needsSourcing = true."""

ADMIN_CONTENT_RULES = """ADMIN SCOPE:
- You are generating training cards for NON-CLINICAL reception/admin staff using our signposting toolkit.
- Primary authority is the toolkit. Do not import GP-level guidance.
- Avoid GP-only content: no clinical risk tools, no diagnostic frameworks, no management plans, no prescribing or treatment advice.
- Every card must include:
  1) A scenario in receptionist language
  2) The exact slot choice (Red / Orange / Pink-Purple / Green)
  3) A short script (1-3 lines): what to ask/say
  4) What to do next (handover/escalate)
  5) What NOT to do (1 line)
  6) Safety netting / escalation thresholds"""

ADMIN_SOURCE_RULES = """ADMIN SOURCES:
- sources[0] MUST be "Signposting Toolkit (internal)" using the TOOLKIT SOURCE details provided.
- Only add NHS/NICE for safety-netting wording if needed.
- Do not cite GP college guidance for admin cards."""

STRICT_ADMIN_RULES = "STRICT ADMIN MODE: Remove clinician-only content and follow toolkit wording."

GENERATION_SCHEMA = """{
  "cards": [
    {
      "targetRole": "ADMIN|GP|NURSE",
      "title": "string",
      "estimatedTimeMinutes": 3-10,
      "tags": ["string"],
      "riskLevel": "LOW|MED|HIGH",
      "needsSourcing": true|false,
      "reviewByDate": "YYYY-MM-DD",
      "sources": [{"title": "string", "url": "https://", "publisher": "string?"}],
      "contentBlocks": [
        {"type": "text|callout", "text": "string"},
        {"type": "steps|do-dont", "items": ["string"]}
      ],
      "interactions": [
        {
          "type": "mcq|true_false|choose_action",
          "question": "string",
          "options": ["string"],
          "correctIndex": 0,
          "explanation": "string"
        }
      ],
      "slotLanguage": {
        "relevant": true|false,
        "guidance": [{"slot": "Red|Orange|Pink-Purple|Green", "rule": "string"}]
      },
      "safetyNetting": ["string"]
    }
  ],
  "quiz": {
    "title": "string",
    "questions": [
      {
        "type": "mcq|true_false",
        "question": "string",
        "options": ["string"],
        "correctIndex": 0,
        "explanation": "string"
      }
    ]
  }
}"""


def get_role_profile(role: TargetRole) -> RoleProfile:
    return ROLE_PROFILES[role]


def resolve_toolkit_source(
    prompt_text: str,
    tags: Optional[List[str]] = None,
    policy: Optional[SafetyPolicy] = None,
) -> Dict[str, str]:
    """Pick the toolkit citation that admin cards must carry first."""
    policy = policy or SafetyPolicy()
    combined = " ".join([prompt_text, *(tags or [])]).lower()
    route = DEFAULT_TOOLKIT_ROUTE
    for pack in TOOLKIT_PACKS:
        if any(keyword in combined for keyword in pack.keywords):
            route = pack.source_route
            break
    return {
        "title": TOOLKIT_SOURCE_TITLE,
        "url": f"{policy.toolkit_base_url.rstrip('/')}/{route}",
        "publisher": TOOLKIT_SOURCE_PUBLISHER,
    }


def _bullets(items: Sequence[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def format_role_profile(role: TargetRole) -> str:
    profile = get_role_profile(role)
    return f"""ROLE PROFILE ({profile.role}):
- Audience: {profile.audience}
- Tone: {profile.tone}
- Allowed content:
{_bullets(profile.allowed_content)}
- Disallowed content:
{_bullets(profile.disallowed_content)}
- Sourcing guidance:
{_bullets(profile.sourcing_guidance)}"""


def build_system_prompt(role: TargetRole, strict_admin: bool = False) -> str:
    """Build the system prompt for a target role.

    Args:
        role: Audience the cards are written for.
        strict_admin: Add the strict admin instruction used on retry.

    Returns:
        System prompt string.
    """
    if role == "ADMIN":
        sections = [
            ADMIN_CONTENT_RULES,
            OUTPUT_RULES,
            SHARED_CONTENT_RULES,
            ADMIN_SOURCE_RULES,
            format_role_profile(role),
        ]
        if strict_admin:
            sections.append(STRICT_ADMIN_RULES)
    else:
        sections = [
            "You are an editorial assistant for Daily Dose learning cards in UK general practice.",
            OUTPUT_RULES,
            SHARED_CONTENT_RULES,
            GENERAL_SOURCE_RULES,
            format_role_profile(role),
        ]
    return "\n\n".join(sections)


def format_admin_issues(issues: Sequence[AdminValidationIssue]) -> str:
    return "\n".join(
        f"- {issue.message}" + (f" (Card: {issue.card_title})" if issue.card_title else "")
        for issue in issues
    )


def build_user_prompt(
    prompt_text: str,
    target_role: TargetRole,
    count: int,
    tags: Optional[List[str]] = None,
    interactive_first: bool = True,
    toolkit_source: Optional[Dict[str, str]] = None,
    validation_issues: Optional[Sequence[AdminValidationIssue]] = None,
) -> str:
    """Build the user prompt for a generation request.

    Args:
        prompt_text: The editor's brief.
        target_role: Audience the cards are written for.
        count: Number of cards to generate.
        tags: Optional tags to steer the content.
        interactive_first: Ask for interaction-led cards.
        toolkit_source: Citation admin cards must use as sources[0].
        validation_issues: Problems from a previous attempt to fix.

    Returns:
        Formatted prompt string.
    """
    sections = []
    if target_role == "ADMIN" and toolkit_source:
        sections.append(
            "TOOLKIT SOURCE (use as sources[0]):\n"
            f"Title: {toolkit_source['title']}\n"
            f"URL: {toolkit_source['url']}\n"
            f"Publisher: {toolkit_source['publisher']}"
        )
    if validation_issues:
        sections.append(f"VALIDATION FAILURES TO FIX:\n{format_admin_issues(validation_issues)}")

    sections.append(
        f"Create {count} learning cards for {target_role} staff.\n"
        f"Prompt: {prompt_text}\n"
        f"Tags: {', '.join(tags or []) or 'none'}\n"
        f"Interactive-first: {'yes' if interactive_first else 'no'}"
    )
    sections.append(f"Return JSON using this schema:\n{GENERATION_SCHEMA}")
    return "\n\n".join(sections)
