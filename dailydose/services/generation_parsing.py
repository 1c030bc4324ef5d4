"""Recover and validate structured learning content from model output.

Model output is untrusted text. It is turned into a GenerationOutput in
stages, each working on plain JSON values until the final schema check:

1. strip markdown fences and surrounding prose
2. strict JSON parse, falling back to a narrow textual repair pass
3. normalise known fields (enum casing, slot spelling, numeric strings,
   single objects where lists are expected)
4. strict schema validation

Every failure is returned as a GenerationParseFailure; nothing here raises
for bad input.
"""

import copy
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from aws_lambda_powertools import Logger
from pydantic import ValidationError

from ..models.generation import GenerationOutput, ValidationIssue

logger = Logger()


SMART_DOUBLE_QUOTES = re.compile("[“”]")
SMART_SINGLE_QUOTES = re.compile("[‘’]")
TRAILING_COMMAS = re.compile(r",\s*([}\]])")
UNQUOTED_KEYS = re.compile(r"([{,]\s*)([A-Za-z0-9_]+)\s*:")
STRING_LITERALS = re.compile(r'("(?:\\.|[^"\\])*")')
JSON_FENCE = re.compile(r"```json\s*", re.IGNORECASE)

# List fields whose items are discriminated unions; pydantic adds the tag to the loc
TAGGED_UNION_FIELDS = ("contentBlocks", "interactions")

ROLE_NORMALISATION = {
    "admin": "ADMIN",
    "receptionist": "ADMIN",
    "reception": "ADMIN",
    "gp": "GP",
    "nurse": "NURSE",
}

RISK_NORMALISATION = {
    "low": "LOW",
    "med": "MED",
    "medium": "MED",
    "high": "HIGH",
}

SLOT_NORMALISATION = {
    "red": "Red",
    "orange": "Orange",
    "green": "Green",
    "pink-purple": "Pink-Purple",
    "pink": "Pink-Purple",
    "purple": "Pink-Purple",
}


@dataclass
class JsonParseAttempt:
    """Outcome of one strict JSON parse."""

    ok: bool
    value: Any = None
    error: Optional[str] = None


@dataclass
class GenerationParseSuccess:
    data: GenerationOutput
    raw_json: Any
    normalised_json: Any
    repaired: bool
    success: bool = field(default=True, init=False)


@dataclass
class GenerationParseFailure:
    issues: List[ValidationIssue]
    repaired: bool = False
    raw_json: Any = None
    normalised_json: Any = None
    success: bool = field(default=False, init=False)


GenerationParseResult = Union[GenerationParseSuccess, GenerationParseFailure]


# =============================================================================
# Text extraction and repair
# =============================================================================


def strip_json_fences(text: str) -> str:
    return JSON_FENCE.sub("", text).replace("```", "")


def extract_json_substring(raw: str) -> str:
    """Slice from the first '{' to the last '}' once fences are removed."""
    trimmed = strip_json_fences(raw.strip())
    first_brace = trimmed.find("{")
    if first_brace == -1:
        return trimmed
    last_brace = trimmed.rfind("}")
    if last_brace < first_brace:
        return trimmed[first_brace:]
    return trimmed[first_brace:last_brace + 1]


def repair_json_text(text: str) -> str:
    """Fix the textual JSON mistakes models commonly make.

    Each substitution only matches its own failure mode: curly quotes,
    a comma directly before a closing bracket, and a bare key directly
    after '{' or ','. Curly single quotes outside string literals are
    delimiters and become '"'; inside a literal they are apostrophes.
    Comma and key fixes never touch text inside string literals.
    """
    text = SMART_DOUBLE_QUOTES.sub('"', text)
    text = _sub_by_context(
        text,
        outside=lambda segment: SMART_SINGLE_QUOTES.sub('"', segment),
        inside=lambda literal: SMART_SINGLE_QUOTES.sub("'", literal),
    )
    return _sub_by_context(
        text,
        outside=lambda segment: UNQUOTED_KEYS.sub(
            r'\1"\2":', TRAILING_COMMAS.sub(r"\1", segment)
        ),
    )


def _sub_by_context(text: str, outside, inside=None) -> str:
    parts = STRING_LITERALS.split(text)
    # split() puts the captured string literals at odd indexes
    for i, part in enumerate(parts):
        if i % 2 == 0:
            parts[i] = outside(part)
        elif inside is not None:
            parts[i] = inside(part)
    return "".join(parts)


def try_parse_json(text: str) -> JsonParseAttempt:
    try:
        return JsonParseAttempt(ok=True, value=json.loads(text))
    except (ValueError, RecursionError) as e:
        return JsonParseAttempt(ok=False, error=str(e))


# =============================================================================
# Normalisation
# =============================================================================


def ensure_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def normalise_role(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return ROLE_NORMALISATION.get(value.strip().lower(), value.upper())


def normalise_risk_level(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return RISK_NORMALISATION.get(value.strip().lower(), value.upper())


def normalise_slot(value: Any) -> Any:
    """Map slot spellings such as 'Pink / Purple' onto the canonical names."""
    if not isinstance(value, str):
        return value
    key = re.sub(r"[\s_]+", "", value.strip().lower()).replace("/", "-")
    return SLOT_NORMALISATION.get(key, value)


def normalise_correct_index(value: Any) -> Any:
    """Turn numeric strings and integral floats into ints."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        try:
            return int(stripped)
        except ValueError:
            pass
        try:
            number = float(stripped)
        except ValueError:
            return value
        return int(number) if number.is_integer() else number
    return value


def _normalise_answerable(item: Any) -> Any:
    if isinstance(item, dict) and "correctIndex" in item:
        item["correctIndex"] = normalise_correct_index(item["correctIndex"])
    return item


def _coerce_list_field(obj: Dict[str, Any], key: str) -> None:
    if key in obj and not isinstance(obj[key], list):
        obj[key] = ensure_list(obj[key])


def _normalise_card(card: Any) -> Any:
    if not isinstance(card, dict):
        return card

    if "targetRole" in card:
        card["targetRole"] = normalise_role(card["targetRole"])
    if "riskLevel" in card:
        card["riskLevel"] = normalise_risk_level(card["riskLevel"])

    for key in ("tags", "sources", "contentBlocks", "interactions", "safetyNetting"):
        _coerce_list_field(card, key)

    if isinstance(card.get("interactions"), list):
        card["interactions"] = [_normalise_answerable(i) for i in card["interactions"]]

    slot_language = card.get("slotLanguage")
    if isinstance(slot_language, dict):
        _coerce_list_field(slot_language, "guidance")
        guidance = slot_language.get("guidance")
        if isinstance(guidance, list):
            for item in guidance:
                if isinstance(item, dict) and "slot" in item:
                    item["slot"] = normalise_slot(item["slot"])

    return card


def normalise_generation_output(raw: Any) -> Any:
    """Return a normalised deep copy of parsed model output.

    Values that are not the expected shape are passed through untouched so
    that schema validation reports them.
    """
    if not isinstance(raw, dict):
        return raw

    output = copy.deepcopy(raw)
    _coerce_list_field(output, "cards")
    if isinstance(output.get("cards"), list):
        output["cards"] = [_normalise_card(card) for card in output["cards"]]

    quiz = output.get("quiz")
    if isinstance(quiz, dict):
        _coerce_list_field(quiz, "questions")
        if isinstance(quiz.get("questions"), list):
            quiz["questions"] = [_normalise_answerable(q) for q in quiz["questions"]]

    return output


# =============================================================================
# Schema validation
# =============================================================================


def _json_type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


_EXPECTED_TYPE_NAMES = {
    "model": "object",
    "model_attributes": "object",
    "dict": "object",
    "list": "array",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
}


def _expected_description(error: Dict[str, Any]) -> Optional[str]:
    ctx = error.get("ctx") or {}
    if "expected" in ctx:
        return str(ctx["expected"])
    if "expected_tags" in ctx:
        return str(ctx["expected_tags"])
    error_type = error.get("type", "")
    if error_type.endswith("_type"):
        name = error_type[: -len("_type")]
        return _EXPECTED_TYPE_NAMES.get(name, name)
    return None


def field_path(loc) -> str:
    """Dot-joined field path for a pydantic error location.

    Union tags (the 'mcq' in cards.0.interactions.0.mcq.explanation) are
    dropped so the path names a real field.
    """
    parts = []
    for i, part in enumerate(loc):
        is_union_tag = (
            i >= 2
            and isinstance(loc[i - 1], int)
            and loc[i - 2] in TAGGED_UNION_FIELDS
        )
        if not is_union_tag:
            parts.append(str(part))
    return ".".join(parts) if parts else "root"


def format_validation_issues(error: ValidationError) -> List[ValidationIssue]:
    """Convert pydantic errors into path + message issues."""
    issues = []
    for item in error.errors():
        path = field_path(item.get("loc") or ())
        message = item.get("msg", "Invalid value")
        expected = _expected_description(item)
        if expected and item.get("type") != "missing":
            received = _json_type_name(item.get("input"))
            message = f"{message} (expected {expected}, received {received})"
        issues.append(ValidationIssue(path=path, message=message))
    return issues


# =============================================================================
# Pipeline
# =============================================================================


def parse_json_with_repair(raw: str):
    """Parse model output, trying the repair pass only if strict parsing fails.

    Returns:
        Tuple of (JsonParseAttempt, repaired flag).
    """
    cleaned = extract_json_substring(raw)
    attempt = try_parse_json(cleaned)
    if attempt.ok:
        return attempt, False

    logger.info(f"Strict JSON parse failed, attempting repair: {attempt.error}")
    repaired_attempt = try_parse_json(repair_json_text(cleaned))
    return repaired_attempt, repaired_attempt.ok


def parse_and_validate_generation(raw: str) -> GenerationParseResult:
    """
    Turn raw model output into a validated GenerationOutput.

    Args:
        raw: Untrusted text returned by the model.

    Returns:
        GenerationParseSuccess with the validated data, or
        GenerationParseFailure with the issues found. Both carry the parsed
        and normalised intermediate JSON where available.
    """
    attempt, repaired = parse_json_with_repair(raw if isinstance(raw, str) else "")
    if not attempt.ok:
        logger.warning(f"Unable to parse model output as JSON: {attempt.error}")
        return GenerationParseFailure(
            issues=[ValidationIssue(path="root", message=f"Unable to parse JSON ({attempt.error}).")],
            repaired=False,
        )

    normalised = None
    try:
        normalised = normalise_generation_output(attempt.value)
        data = GenerationOutput.model_validate(normalised)
    except RecursionError:
        logger.warning("Generation output is nested too deeply to validate")
        return GenerationParseFailure(
            issues=[ValidationIssue(path="root", message="JSON is nested too deeply to validate.")],
            repaired=repaired,
            raw_json=attempt.value,
            normalised_json=normalised,
        )
    except ValidationError as e:
        issues = format_validation_issues(e)
        logger.warning(f"Generation output failed schema validation with {len(issues)} issues")
        return GenerationParseFailure(
            issues=issues,
            repaired=repaired,
            raw_json=attempt.value,
            normalised_json=normalised,
        )

    return GenerationParseSuccess(
        data=data,
        raw_json=attempt.value,
        normalised_json=normalised,
        repaired=repaired,
    )
