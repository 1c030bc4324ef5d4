"""Amazon Bedrock service for AI learning card generation."""

import json
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import boto3
from aws_lambda_powertools import Logger
from botocore.config import Config
from botocore.exceptions import ClientError

from ..models.generation import GenerateCardsRequest, GenerationOutput, LearningCard, Quiz, Source
from ..models.safety import AdminValidationIssue
from .admin_validator import validate_admin_cards
from .card_text import combine_card_text
from .generation_parsing import parse_and_validate_generation
from .guards import (
    combine_risk_level,
    infer_risk_level,
    resolve_needs_sourcing,
    should_require_clinician_approval,
)
from .policy import SafetyPolicy, TOOLKIT_SOURCE_PUBLISHER
from .prompts import build_system_prompt, build_user_prompt, resolve_toolkit_source

logger = Logger()

# Default review window for cards whose review-by date is missing or past
DEFAULT_REVIEW_WINDOW_DAYS = 180


class EditorialAiError(Exception):
    """Base exception for editorial generation errors."""

    # Machine codes the route layer returns to clients
    ERROR_CODES = {
        "CONFIG_MISSING": "AI_CONFIG_MISSING",
        "LLM_FAILED": "AI_REQUEST_FAILED",
        "LLM_EMPTY": "AI_EMPTY_RESPONSE",
        "INVALID_JSON": "SCHEMA_MISMATCH",
        "VALIDATION_FAILED": "SAFETY_VALIDATION_FAILED",
    }

    def __init__(self, code: str, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or []

    @property
    def error_code(self) -> str:
        return self.ERROR_CODES.get(self.code, self.code)

    def to_error_payload(self) -> Dict[str, Any]:
        """Client-facing error body with the machine code and issue list."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class EditorialTimeoutError(EditorialAiError):
    """Raised when Bedrock API times out."""

    def __init__(self, message: str = "Bedrock API timed out"):
        super().__init__("LLM_FAILED", message)


class EditorialRateLimitError(EditorialAiError):
    """Raised when Bedrock API rate limit is exceeded."""

    def __init__(self, message: str = "Bedrock rate limit exceeded"):
        super().__init__("LLM_FAILED", message)


class EditorialInternalError(EditorialAiError):
    """Raised when Bedrock API returns internal error."""

    def __init__(self, message: str = "Bedrock internal error"):
        super().__init__("LLM_FAILED", message)


@dataclass
class GenerationAttempt:
    """One model call and what came of it."""

    request_id: str
    attempt_index: int
    model_name: str
    raw_model_output: str
    status: str
    raw_model_json: Any = None
    validation_errors: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class DraftCard:
    """A generated card after the safety guard has run."""

    card: LearningCard
    requires_clinician_approval: bool


@dataclass
class EditorialBatchResult:
    """Result of one editorial generation."""

    request_id: str
    cards: List[DraftCard]
    quiz: Quiz
    model_used: str
    attempts: List[GenerationAttempt]
    processing_time_ms: int


class EditorialGenerationService:
    """Service for generating Daily Dose learning cards with Amazon Bedrock."""

    DEFAULT_MODEL_ID = "anthropic.claude-3-haiku-20240307-v1:0"
    MAX_TOKENS = 4096
    DEFAULT_TEMPERATURE = 0.2
    DEFAULT_TIMEOUT = 60
    MAX_RETRIES = 2

    def __init__(
        self,
        model_id: Optional[str] = None,
        bedrock_client=None,
        policy: Optional[SafetyPolicy] = None,
    ):
        """Initialize EditorialGenerationService.

        Args:
            model_id: Bedrock model ID. Defaults to Claude 3 Haiku.
            bedrock_client: Optional boto3 Bedrock client for testing.
            policy: Optional safety policy for the content checks.
        """
        self.model_id = model_id or os.environ.get(
            "BEDROCK_MODEL_ID", self.DEFAULT_MODEL_ID
        )
        self.policy = policy or SafetyPolicy()

        if bedrock_client:
            self.client = bedrock_client
        else:
            config = Config(
                read_timeout=self.DEFAULT_TIMEOUT,
                connect_timeout=5,
                retries={"max_attempts": 0},  # We handle retries ourselves
            )
            endpoint_url = os.environ.get("BEDROCK_ENDPOINT_URL")
            if endpoint_url:
                self.client = boto3.client(
                    "bedrock-runtime",
                    config=config,
                    endpoint_url=endpoint_url,
                )
            else:
                self.client = boto3.client("bedrock-runtime", config=config)

    def generate_batch(
        self,
        request: GenerateCardsRequest,
        available_tags: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> EditorialBatchResult:
        """Generate a batch of draft learning cards and a quiz.

        Admin output that breaks the admin content rules is regenerated once
        in strict admin mode with the problems fed back to the model.

        Args:
            request: Validated generation request.
            available_tags: If given, card tags are limited to these names.
            now: Current time, used for review-by dates. Defaults to UTC now.

        Returns:
            EditorialBatchResult with risk-tagged draft cards.

        Raises:
            EditorialAiError: INVALID_JSON if the output cannot be repaired
                into the schema, VALIDATION_FAILED if admin output still
                breaks the rules after the retry, LLM_* on transport errors.
        """
        start_time = time.time()
        now = now or datetime.now(timezone.utc)
        request_id = str(uuid.uuid4())
        role = request.target_role
        attempts: List[GenerationAttempt] = []

        toolkit_source = None
        if role == "ADMIN":
            toolkit_source = resolve_toolkit_source(request.prompt_text, request.tags, self.policy)

        logger.info(f"Generating {request.count} {role} cards, request_id: {request_id}")

        output = self._generate_and_validate(
            system_prompt=build_system_prompt(role),
            user_prompt=build_user_prompt(
                prompt_text=request.prompt_text,
                target_role=role,
                count=request.count,
                tags=request.tags,
                interactive_first=request.interactive_first,
                toolkit_source=toolkit_source,
            ),
            request_id=request_id,
            attempts=attempts,
        )

        if role == "ADMIN":
            issues = validate_admin_cards(output.cards, request.prompt_text, self.policy)
            if issues:
                self._mark_validation_failed(attempts[-1], issues)
                logger.warning(f"Admin validation failed with {len(issues)} issues, retrying in strict mode")

                output = self._generate_and_validate(
                    system_prompt=build_system_prompt(role, strict_admin=True),
                    user_prompt=build_user_prompt(
                        prompt_text=request.prompt_text,
                        target_role=role,
                        count=request.count,
                        tags=request.tags,
                        interactive_first=request.interactive_first,
                        toolkit_source=toolkit_source,
                        validation_issues=issues,
                    ),
                    request_id=request_id,
                    attempts=attempts,
                )

                retry_issues = validate_admin_cards(output.cards, request.prompt_text, self.policy)
                if retry_issues:
                    self._mark_validation_failed(attempts[-1], retry_issues)
                    raise EditorialAiError(
                        "VALIDATION_FAILED",
                        "Admin output failed safety validation",
                        [issue.model_dump(by_alias=True) for issue in retry_issues],
                    )

        allowed_tags = set(available_tags) if available_tags else None
        drafts = [
            self._prepare_draft(card, toolkit_source, allowed_tags, now)
            for card in output.cards[: request.count]
        ]

        processing_time_ms = int((time.time() - start_time) * 1000)

        return EditorialBatchResult(
            request_id=request_id,
            cards=drafts,
            quiz=output.quiz,
            model_used=self.model_id,
            attempts=attempts,
            processing_time_ms=processing_time_ms,
        )

    def _generate_and_validate(
        self,
        system_prompt: str,
        user_prompt: str,
        request_id: str,
        attempts: List[GenerationAttempt],
    ) -> GenerationOutput:
        """Call the model once and parse its output, recording the attempt.

        Raises:
            EditorialAiError: INVALID_JSON if the output does not validate.
        """
        response_text = self._invoke_with_retry(system_prompt, user_prompt)
        result = parse_and_validate_generation(response_text)

        attempt = GenerationAttempt(
            request_id=request_id,
            attempt_index=len(attempts),
            model_name=self.model_id,
            raw_model_output=response_text,
            status="SUCCESS" if result.success else "INVALID_JSON",
            raw_model_json=result.raw_json,
        )
        attempts.append(attempt)

        if not result.success:
            attempt.validation_errors = [issue.model_dump() for issue in result.issues]
            logger.warning(f"Generated output did not match schema: {attempt.validation_errors}")
            raise EditorialAiError(
                "INVALID_JSON",
                "Generated output did not match schema",
                attempt.validation_errors,
            )

        if result.repaired:
            logger.info(f"Model output needed JSON repair, request_id: {request_id}")
        return result.data

    @staticmethod
    def _mark_validation_failed(
        attempt: GenerationAttempt,
        issues: List[AdminValidationIssue],
    ) -> None:
        attempt.status = "VALIDATION_FAILED"
        attempt.validation_errors = [issue.model_dump(by_alias=True) for issue in issues]

    def _prepare_draft(
        self,
        card: LearningCard,
        toolkit_source: Optional[Dict[str, str]],
        allowed_tags: Optional[set],
        now: datetime,
    ) -> DraftCard:
        """Apply the safety guard and house rules to a generated card."""
        inferred_risk = infer_risk_level(combine_card_text(card), self.policy)
        risk_level = combine_risk_level(card.risk_level, inferred_risk)

        sources = list(card.sources)
        if card.target_role == "ADMIN" and toolkit_source:
            sources = self._with_toolkit_source_first(sources, toolkit_source)

        review_by_date = self._parse_review_by_date(card.review_by_date)
        review_by_date_valid = review_by_date is not None and review_by_date > now.date()
        if not review_by_date_valid:
            review_by_date = (now + timedelta(days=DEFAULT_REVIEW_WINDOW_DAYS)).date()

        needs_sourcing = (
            resolve_needs_sourcing(sources, card.needs_sourcing, policy=self.policy)
            or not review_by_date_valid
        )

        tags = [tag.strip() for tag in card.tags]
        if allowed_tags is not None:
            tags = [tag for tag in tags if tag in allowed_tags]

        prepared = card.model_copy(
            update={
                "risk_level": risk_level,
                "needs_sourcing": needs_sourcing,
                "review_by_date": review_by_date.isoformat(),
                "sources": sources,
                "tags": tags,
            }
        )
        return DraftCard(
            card=prepared,
            requires_clinician_approval=should_require_clinician_approval(risk_level),
        )

    @staticmethod
    def _with_toolkit_source_first(
        sources: List[Source],
        toolkit_source: Dict[str, str],
    ) -> List[Source]:
        """Put exactly one toolkit citation at the front of the sources."""
        others = [
            source for source in sources
            if not source.title.startswith(TOOLKIT_SOURCE_PUBLISHER)
        ]
        existing = [
            source for source in sources
            if source.title.startswith(TOOLKIT_SOURCE_PUBLISHER)
        ]
        first = existing[0] if existing else Source(**toolkit_source)
        return [first] + others

    @staticmethod
    def _parse_review_by_date(value: str) -> Optional[date]:
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None

    def _invoke_with_retry(self, system_prompt: str, user_prompt: str) -> str:
        """Invoke Bedrock API with retry logic.

        Args:
            system_prompt: The system prompt to send.
            user_prompt: The user prompt to send.

        Returns:
            Response text from the model.

        Raises:
            EditorialTimeoutError: If API times out.
            EditorialRateLimitError: If rate limit exceeded after retries.
            EditorialInternalError: If internal error after retries.
        """
        last_error = None

        for attempt in range(self.MAX_RETRIES + 1):
            try:
                return self._invoke_claude(system_prompt, user_prompt)
            except EditorialTimeoutError:
                # Don't retry timeouts
                raise
            except EditorialRateLimitError as e:
                last_error = e
                if attempt < self.MAX_RETRIES:
                    # Exponential backoff
                    time.sleep(2 ** attempt)
                    continue
                raise
            except EditorialInternalError as e:
                last_error = e
                if attempt < self.MAX_RETRIES:
                    time.sleep(1)
                    continue
                raise

        raise last_error or EditorialAiError("LLM_FAILED", "Unknown error during retry")

    def _invoke_claude(self, system_prompt: str, user_prompt: str) -> str:
        """Invoke Claude model via Bedrock.

        Raises:
            EditorialTimeoutError: If API times out.
            EditorialRateLimitError: If rate limit exceeded.
            EditorialInternalError: If internal error.
            EditorialAiError: LLM_EMPTY if the model returned no text.
        """
        request_body = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": self.MAX_TOKENS,
            "temperature": self.DEFAULT_TEMPERATURE,
            "system": system_prompt,
            "messages": [
                {
                    "role": "user",
                    "content": user_prompt,
                }
            ],
        }

        try:
            response = self.client.invoke_model(
                modelId=self.model_id,
                body=json.dumps(request_body),
                contentType="application/json",
                accept="application/json",
            )
            response_body = json.loads(response["body"].read())
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")

            if error_code in ("ReadTimeoutError", "ConnectTimeoutError"):
                raise EditorialTimeoutError() from e
            elif error_code in ("ThrottlingException", "TooManyRequestsException"):
                raise EditorialRateLimitError() from e
            elif error_code in ("InternalServerException", "ServiceException"):
                raise EditorialInternalError() from e
            else:
                raise EditorialAiError("LLM_FAILED", f"Bedrock API error: {error_code}") from e
        except Exception as e:
            if "timeout" in str(e).lower():
                raise EditorialTimeoutError() from e
            raise EditorialAiError("LLM_FAILED", f"Bedrock API error: {e}") from e

        content = response_body.get("content") or []
        text = content[0].get("text", "") if content else ""
        if not text.strip():
            raise EditorialAiError("LLM_EMPTY", "AI returned empty content")
        return text
