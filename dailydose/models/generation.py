"""Editorial generation models for Daily Dose learning content."""

from typing import Annotated, List, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

from .base import CamelModel, StrictCamelModel


TargetRole = Literal["ADMIN", "GP", "NURSE"]
RiskLevel = Literal["LOW", "MED", "HIGH"]
Slot = Literal["Red", "Orange", "Pink-Purple", "Green"]

NonEmptyStr = Annotated[str, Field(min_length=1)]

# Relative links into the toolkit's own signposting pages
TOOLKIT_RELATIVE_PREFIXES = ("/s/", "/symptom/")


class ValidationIssue(BaseModel):
    """A single addressable validation failure."""

    path: str = Field(..., description="Dot-separated field path, 'root' if none applies")
    message: str


class Source(StrictCamelModel):
    """Citation attached to a learning card."""

    title: NonEmptyStr
    url: Optional[str] = None
    publisher: Optional[str] = None
    accessed_date: Optional[str] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        """Accept absolute URLs, toolkit-relative links, or nothing."""
        if v is None or v.strip() == "":
            return None
        if v.startswith(TOOLKIT_RELATIVE_PREFIXES):
            return v
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"Invalid url: {v}")
        return v


class TextBlock(StrictCamelModel):
    type: Literal["text"]
    text: NonEmptyStr


class CalloutBlock(StrictCamelModel):
    type: Literal["callout"]
    text: NonEmptyStr


class StepsBlock(StrictCamelModel):
    type: Literal["steps"]
    items: List[NonEmptyStr] = Field(..., min_length=1)


class DoDontBlock(StrictCamelModel):
    type: Literal["do-dont"]
    items: List[NonEmptyStr] = Field(..., min_length=2)


ContentBlock = Annotated[
    Union[TextBlock, CalloutBlock, StepsBlock, DoDontBlock],
    Field(discriminator="type"),
]


class _AnswerableQuestion(StrictCamelModel):
    """Question with options and the zero-based index of the right answer."""

    question: NonEmptyStr
    options: List[NonEmptyStr] = Field(..., min_length=2)
    correct_index: int = Field(..., ge=0)
    explanation: NonEmptyStr

    @model_validator(mode="after")
    def check_correct_index(self):
        if self.correct_index >= len(self.options):
            raise ValueError(
                f"correctIndex {self.correct_index} is out of range for "
                f"{len(self.options)} options"
            )
        return self


class McqInteraction(_AnswerableQuestion):
    type: Literal["mcq"]


class TrueFalseInteraction(_AnswerableQuestion):
    type: Literal["true_false"]
    options: List[NonEmptyStr] = Field(..., min_length=2, max_length=2)
    correct_index: int = Field(..., ge=0, le=1)


class ChooseActionInteraction(_AnswerableQuestion):
    type: Literal["choose_action"]


Interaction = Annotated[
    Union[McqInteraction, TrueFalseInteraction, ChooseActionInteraction],
    Field(discriminator="type"),
]


class SlotGuidance(StrictCamelModel):
    slot: Slot
    rule: NonEmptyStr


class SlotLanguage(StrictCamelModel):
    relevant: bool
    guidance: List[SlotGuidance]


class LearningCard(StrictCamelModel):
    """A generated micro-learning card."""

    target_role: TargetRole
    title: NonEmptyStr
    estimated_time_minutes: int = Field(..., ge=3, le=10)
    tags: List[NonEmptyStr] = Field(default_factory=list)
    risk_level: RiskLevel
    needs_sourcing: bool
    review_by_date: NonEmptyStr
    sources: List[Source] = Field(..., min_length=1)
    content_blocks: List[ContentBlock] = Field(..., min_length=1)
    interactions: List[Interaction] = Field(..., min_length=1)
    slot_language: SlotLanguage
    safety_netting: List[NonEmptyStr] = Field(..., min_length=1)


class QuizQuestion(_AnswerableQuestion):
    type: Literal["mcq", "true_false"]
    linked_card_ids: Optional[List[str]] = None


class Quiz(StrictCamelModel):
    title: NonEmptyStr
    questions: List[QuizQuestion] = Field(..., min_length=1)


class GenerationOutput(StrictCamelModel):
    """Validated output of one editorial generation."""

    cards: List[LearningCard] = Field(..., min_length=1)
    quiz: Quiz


class GenerateCardsRequest(CamelModel):
    """Request model for AI learning card generation."""

    prompt_text: str = Field(
        ...,
        min_length=10,
        description="Free-text brief describing the cards to generate",
    )
    target_role: TargetRole
    count: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Number of cards to generate",
    )
    tags: List[str] = Field(default_factory=list)
    interactive_first: bool = True

    @field_validator("prompt_text")
    @classmethod
    def validate_prompt_text(cls, v: str) -> str:
        """Validate prompt text is not just whitespace."""
        stripped = v.strip()
        if len(stripped) < 10:
            raise ValueError("Prompt text must be at least 10 characters")
        return v
