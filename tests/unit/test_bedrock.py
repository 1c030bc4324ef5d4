"""Unit tests for the editorial generation service."""

import copy
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from dailydose.models.generation import GenerateCardsRequest
from dailydose.services.bedrock import (
    EditorialAiError,
    EditorialGenerationService,
    EditorialInternalError,
    EditorialRateLimitError,
    EditorialTimeoutError,
)
from dailydose.services.prompts import STRICT_ADMIN_RULES

NOW = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


def model_response(text):
    """Build a Bedrock invoke_model response carrying the given text."""
    body = json.dumps({"content": [{"type": "text", "text": text}]}).encode()
    return {"body": MagicMock(read=MagicMock(return_value=body))}


def client_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "InvokeModel")


def gp_request(**kwargs):
    values = {"prompt_text": "Sore throat safety netting", "target_role": "GP", "count": 1}
    values.update(kwargs)
    return GenerateCardsRequest(**values)


def admin_request(**kwargs):
    values = {
        "prompt_text": "Mental health crisis calls at reception",
        "target_role": "ADMIN",
        "count": 1,
    }
    values.update(kwargs)
    return GenerateCardsRequest(**values)


@pytest.fixture
def mock_client():
    return MagicMock()


@pytest.fixture
def service(mock_client):
    return EditorialGenerationService(bedrock_client=mock_client)


class TestGenerateBatch:
    """Tests for generate_batch on clinical roles."""

    def test_generates_draft_cards(self, service, mock_client, valid_payload):
        mock_client.invoke_model.return_value = model_response(json.dumps(valid_payload))

        result = service.generate_batch(gp_request(), now=NOW)

        assert len(result.cards) == 1
        draft = result.cards[0]
        assert draft.card.title == valid_payload["cards"][0]["title"]
        assert draft.card.risk_level == "LOW"
        assert draft.card.needs_sourcing is False
        assert draft.card.review_by_date == "2027-06-01"
        assert draft.requires_clinician_approval is False
        assert result.quiz.title == "Quick check"
        assert result.model_used == service.model_id
        assert [attempt.status for attempt in result.attempts] == ["SUCCESS"]
        assert result.attempts[0].raw_model_json == valid_payload

    def test_request_body(self, service, mock_client, valid_payload):
        """The model is called with the system prompt and the brief."""
        mock_client.invoke_model.return_value = model_response(json.dumps(valid_payload))

        service.generate_batch(gp_request(), now=NOW)

        call_kwargs = mock_client.invoke_model.call_args.kwargs
        body = json.loads(call_kwargs["body"])
        assert call_kwargs["modelId"] == service.model_id
        assert body["temperature"] == EditorialGenerationService.DEFAULT_TEMPERATURE
        assert "ROLE PROFILE (GP)" in body["system"]
        assert "Prompt: Sore throat safety netting" in body["messages"][0]["content"]

    def test_fenced_output_is_accepted(self, service, mock_client, valid_payload):
        text = f"```json\n{json.dumps(valid_payload)}\n```"
        mock_client.invoke_model.return_value = model_response(text)

        result = service.generate_batch(gp_request(), now=NOW)

        assert len(result.cards) == 1

    def test_risk_is_raised_from_content(self, service, mock_client, valid_payload):
        """Crisis language overrides a declared LOW risk."""
        valid_payload["cards"][0]["safetyNetting"] = ["Call 999 for chest pain."]
        mock_client.invoke_model.return_value = model_response(json.dumps(valid_payload))

        draft = service.generate_batch(gp_request(), now=NOW).cards[0]

        assert draft.card.risk_level == "HIGH"
        assert draft.requires_clinician_approval is True

    def test_unrecognised_sources_need_sourcing(self, service, mock_client, valid_payload):
        valid_payload["cards"][0]["sources"] = [{"title": "Blog", "url": "https://blog.example.com/"}]
        mock_client.invoke_model.return_value = model_response(json.dumps(valid_payload))

        draft = service.generate_batch(gp_request(), now=NOW).cards[0]

        assert draft.card.needs_sourcing is True

    @pytest.mark.parametrize("review_by_date", ["2025-01-01", "soon"])
    def test_stale_review_date_is_replaced(self, service, mock_client, valid_payload, review_by_date):
        """Missing or past review dates get a fresh window and need sourcing."""
        valid_payload["cards"][0]["reviewByDate"] = review_by_date
        mock_client.invoke_model.return_value = model_response(json.dumps(valid_payload))

        draft = service.generate_batch(gp_request(), now=NOW).cards[0]

        assert draft.card.review_by_date == (NOW + timedelta(days=180)).date().isoformat()
        assert draft.card.needs_sourcing is True

    def test_tags_are_limited_to_available_tags(self, service, mock_client, valid_payload):
        valid_payload["cards"][0]["tags"] = ["ent", " infection ", "made-up"]
        mock_client.invoke_model.return_value = model_response(json.dumps(valid_payload))

        draft = service.generate_batch(
            gp_request(), available_tags=["ent", "infection"], now=NOW
        ).cards[0]

        assert draft.card.tags == ["ent", "infection"]

    def test_extra_cards_are_dropped(self, service, mock_client, valid_payload):
        second = copy.deepcopy(valid_payload["cards"][0])
        second["title"] = "Second card"
        valid_payload["cards"].append(second)
        mock_client.invoke_model.return_value = model_response(json.dumps(valid_payload))

        result = service.generate_batch(gp_request(count=1), now=NOW)

        assert [draft.card.title for draft in result.cards] == [valid_payload["cards"][0]["title"]]

    def test_invalid_output_raises(self, service, mock_client, valid_payload):
        del valid_payload["quiz"]
        mock_client.invoke_model.return_value = model_response(json.dumps(valid_payload))

        with pytest.raises(EditorialAiError) as exc_info:
            service.generate_batch(gp_request(), now=NOW)

        error = exc_info.value
        assert error.code == "INVALID_JSON"
        assert error.error_code == "SCHEMA_MISMATCH"
        assert error.details == [{"path": "quiz", "message": "Field required"}]

    def test_unparseable_output_raises(self, service, mock_client):
        mock_client.invoke_model.return_value = model_response("Sorry, I can't do that.")

        with pytest.raises(EditorialAiError) as exc_info:
            service.generate_batch(gp_request(), now=NOW)

        assert exc_info.value.code == "INVALID_JSON"
        assert exc_info.value.details[0]["path"] == "root"


class TestGenerateBatchAdmin:
    """Tests for generate_batch on admin cards."""

    def test_compliant_output(self, service, mock_client, admin_payload):
        mock_client.invoke_model.return_value = model_response(json.dumps(admin_payload))

        result = service.generate_batch(admin_request(), now=NOW)

        assert mock_client.invoke_model.call_count == 1
        body = json.loads(mock_client.invoke_model.call_args.kwargs["body"])
        assert "TOOLKIT SOURCE (use as sources[0])" in body["messages"][0]["content"]
        assert "/mental-health-crisis" in body["messages"][0]["content"]

        draft = result.cards[0]
        assert draft.card.risk_level == "HIGH"
        assert draft.requires_clinician_approval is True
        assert draft.card.needs_sourcing is False

    def test_toolkit_source_moves_first(self, service, mock_client, admin_payload):
        card = admin_payload["cards"][0]
        card["sources"] = [
            {"title": "NHS 111", "url": "https://111.nhs.uk/"},
            card["sources"][0],
        ]
        mock_client.invoke_model.return_value = model_response(json.dumps(admin_payload))

        draft = service.generate_batch(admin_request(), now=NOW).cards[0]

        assert [source.title for source in draft.card.sources] == [
            "Signposting Toolkit (internal)",
            "NHS 111",
        ]

    def test_toolkit_source_is_added_when_absent(self, service, mock_client, admin_payload):
        """An internal source without a link is kept behind the toolkit citation."""
        admin_payload["cards"][0]["sources"] = [{"title": "Practice policy"}]
        mock_client.invoke_model.return_value = model_response(json.dumps(admin_payload))

        draft = service.generate_batch(admin_request(), now=NOW).cards[0]

        assert draft.card.sources[0].title == "Signposting Toolkit (internal)"
        assert draft.card.sources[0].url.endswith("/mental-health-crisis")
        assert draft.card.sources[1].title == "Practice policy"

    def test_retries_in_strict_mode(self, service, mock_client, admin_payload):
        """A rule violation triggers one strict retry with the issues fed back."""
        bad = copy.deepcopy(admin_payload)
        bad["cards"][0]["contentBlocks"] = [{"type": "text", "text": "Complete a PHQ-9 first."}]
        mock_client.invoke_model.side_effect = [
            model_response(json.dumps(bad)),
            model_response(json.dumps(admin_payload)),
        ]

        result = service.generate_batch(admin_request(), now=NOW)

        assert mock_client.invoke_model.call_count == 2
        retry_body = json.loads(mock_client.invoke_model.call_args_list[1].kwargs["body"])
        assert STRICT_ADMIN_RULES in retry_body["system"]
        assert "Forbidden content detected: PHQ-9" in retry_body["messages"][0]["content"]

        assert [attempt.status for attempt in result.attempts] == ["VALIDATION_FAILED", "SUCCESS"]
        assert result.attempts[0].validation_errors[0]["code"] == "FORBIDDEN_PATTERN"
        assert [attempt.attempt_index for attempt in result.attempts] == [0, 1]

    def test_repeated_violation_raises(self, service, mock_client, admin_payload):
        admin_payload["cards"][0]["contentBlocks"] = [
            {"type": "text", "text": "Ask about medication changes."}
        ]
        mock_client.invoke_model.return_value = model_response(json.dumps(admin_payload))

        with pytest.raises(EditorialAiError) as exc_info:
            service.generate_batch(admin_request(), now=NOW)

        error = exc_info.value
        assert mock_client.invoke_model.call_count == 2
        assert error.code == "VALIDATION_FAILED"
        payload = error.to_error_payload()
        assert payload["error"]["code"] == "SAFETY_VALIDATION_FAILED"
        assert payload["error"]["details"][0]["code"] == "FORBIDDEN_PATTERN"
        assert payload["error"]["details"][0]["cardTitle"] == admin_payload["cards"][0]["title"]


class TestInvokeWithRetry:
    """Tests for Bedrock transport errors and retries."""

    def test_rate_limit_then_success(self, service, mock_client):
        mock_client.invoke_model.side_effect = [
            client_error("ThrottlingException"),
            model_response('{"ok": true}'),
        ]

        with patch("dailydose.services.bedrock.time.sleep") as mock_sleep:
            text = service._invoke_with_retry("system", "user")

        assert text == '{"ok": true}'
        mock_sleep.assert_called_once_with(1)

    def test_rate_limit_exhausted(self, service, mock_client):
        mock_client.invoke_model.side_effect = client_error("ThrottlingException")

        with patch("dailydose.services.bedrock.time.sleep") as mock_sleep:
            with pytest.raises(EditorialRateLimitError):
                service._invoke_with_retry("system", "user")

        assert mock_client.invoke_model.call_count == EditorialGenerationService.MAX_RETRIES + 1
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]

    def test_internal_error_exhausted(self, service, mock_client):
        mock_client.invoke_model.side_effect = client_error("InternalServerException")

        with patch("dailydose.services.bedrock.time.sleep"):
            with pytest.raises(EditorialInternalError):
                service._invoke_with_retry("system", "user")

        assert mock_client.invoke_model.call_count == 3

    def test_timeout_is_not_retried(self, service, mock_client):
        mock_client.invoke_model.side_effect = client_error("ReadTimeoutError")

        with pytest.raises(EditorialTimeoutError):
            service._invoke_with_retry("system", "user")

        assert mock_client.invoke_model.call_count == 1

    def test_timeout_exception_message(self, service, mock_client):
        mock_client.invoke_model.side_effect = Exception("Read timeout on endpoint URL")

        with pytest.raises(EditorialTimeoutError):
            service._invoke_with_retry("system", "user")

    def test_other_client_error(self, service, mock_client):
        mock_client.invoke_model.side_effect = client_error("AccessDeniedException")

        with pytest.raises(EditorialAiError) as exc_info:
            service._invoke_with_retry("system", "user")

        assert exc_info.value.code == "LLM_FAILED"
        assert exc_info.value.error_code == "AI_REQUEST_FAILED"
        assert "AccessDeniedException" in exc_info.value.message

    def test_empty_response(self, service, mock_client):
        mock_client.invoke_model.return_value = model_response("   ")

        with pytest.raises(EditorialAiError) as exc_info:
            service._invoke_with_retry("system", "user")

        assert exc_info.value.code == "LLM_EMPTY"
        assert exc_info.value.error_code == "AI_EMPTY_RESPONSE"


class TestServiceConfig:
    """Tests for service configuration."""

    def test_model_id_from_environment(self, monkeypatch, mock_client):
        monkeypatch.setenv("BEDROCK_MODEL_ID", "anthropic.claude-test")

        service = EditorialGenerationService(bedrock_client=mock_client)

        assert service.model_id == "anthropic.claude-test"

    def test_explicit_model_id(self, mock_client):
        service = EditorialGenerationService(model_id="custom-model", bedrock_client=mock_client)

        assert service.model_id == "custom-model"

    def test_default_client(self, monkeypatch):
        monkeypatch.setenv("BEDROCK_ENDPOINT_URL", "http://localhost:4566")

        with patch("dailydose.services.bedrock.boto3.client") as mock_boto:
            EditorialGenerationService()

        assert mock_boto.call_args.args == ("bedrock-runtime",)
        assert mock_boto.call_args.kwargs["endpoint_url"] == "http://localhost:4566"
