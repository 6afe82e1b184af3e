"""Tests for the chat-completions vision client.

requests.post is mocked; no network access.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from carb_estimator.cv_food_rec.image_normalizer import EncodedImage
from carb_estimator.cv_food_rec.openai_vision_client import (
    MAX_TOKENS,
    TEMPERATURE,
    OpenAIVisionClient,
)
from carb_estimator.errors import CredentialMissingError, ServiceError, UnknownAnalysisError

POST = "carb_estimator.cv_food_rec.openai_vision_client.requests.post"

IMAGE = EncodedImage(data=b"\xff\xd8\xff\xe0fake-jpeg", width=800, height=600)


def _response(status_code=200, json_data=None, text="", reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = text
    response.reason = reason
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestPayload:
    def test_payload_shape(self):
        client = OpenAIVisionClient(model="gpt-4o")

        payload = client.build_payload(IMAGE)

        assert payload["model"] == "gpt-4o"
        assert payload["max_tokens"] == MAX_TOKENS == 800
        assert payload["temperature"] == TEMPERATURE == 0.3

        system, user = payload["messages"]
        assert system["role"] == "system"
        assert '"totalCarbs"' in system["content"]
        assert user["role"] == "user"

        text_part, image_part = user["content"]
        assert text_part["type"] == "text"
        assert "JSON" in text_part["text"]
        assert image_part["type"] == "image_url"
        assert image_part["image_url"]["url"] == IMAGE.to_data_uri()
        assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")

    def test_url_strips_trailing_slash(self):
        client = OpenAIVisionClient(base_url="https://example.test/v1/")
        assert client.url == "https://example.test/v1/chat/completions"


class TestComplete:
    @patch(POST)
    def test_returns_first_choice_content(self, mock_post):
        mock_post.return_value = _response(json_data=_completion('{"totalCarbs": 10}'))
        client = OpenAIVisionClient(base_url="https://api.openai.com/v1")

        content = client.complete(IMAGE, "sk-test")

        assert content == '{"totalCarbs": 10}'
        args, kwargs = mock_post.call_args
        assert args[0] == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["headers"]["Content-Type"] == "application/json"
        assert kwargs["json"] == client.build_payload(IMAGE)
        assert kwargs["timeout"] is None

    @patch(POST)
    def test_configured_timeout_is_passed(self, mock_post):
        mock_post.return_value = _response(json_data=_completion("ok"))

        OpenAIVisionClient(timeout=30.0).complete(IMAGE, "sk-test")

        assert mock_post.call_args.kwargs["timeout"] == 30.0

    @patch(POST)
    def test_missing_credential_never_calls_service(self, mock_post):
        client = OpenAIVisionClient()

        for key in (None, "", "   "):
            with pytest.raises(CredentialMissingError):
                client.complete(IMAGE, key)

        mock_post.assert_not_called()

    @patch(POST)
    def test_error_status_includes_upstream_message(self, mock_post):
        mock_post.return_value = _response(
            status_code=401,
            json_data={"error": {"message": "Incorrect API key provided", "type": "invalid_request_error"}},
            reason="Unauthorized",
        )

        with pytest.raises(ServiceError) as exc_info:
            OpenAIVisionClient().complete(IMAGE, "sk-bad")

        assert exc_info.value.status_code == 401
        assert str(exc_info.value) == "API error: 401 - Incorrect API key provided"

    @patch(POST)
    def test_error_status_with_plain_text_body(self, mock_post):
        mock_post.return_value = _response(
            status_code=502,
            json_data=ValueError("not json"),
            text="Bad gateway",
            reason="Bad Gateway",
        )

        with pytest.raises(ServiceError) as exc_info:
            OpenAIVisionClient().complete(IMAGE, "sk-test")

        assert str(exc_info.value) == "API error: 502 - Bad gateway"

    @patch(POST)
    def test_error_status_without_detail_uses_reason(self, mock_post):
        mock_post.return_value = _response(status_code=429, json_data={}, reason="Too Many Requests")

        with pytest.raises(ServiceError) as exc_info:
            OpenAIVisionClient().complete(IMAGE, "sk-test")

        assert str(exc_info.value) == "API error: 429 - Too Many Requests"

    @patch(POST)
    def test_transport_failure_is_unknown_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("Connection refused")

        with pytest.raises(UnknownAnalysisError, match="Connection refused"):
            OpenAIVisionClient().complete(IMAGE, "sk-test")

    @patch(POST)
    def test_malformed_success_body_is_unknown_error(self, mock_post):
        mock_post.return_value = _response(json_data={"choices": []})

        with pytest.raises(UnknownAnalysisError):
            OpenAIVisionClient().complete(IMAGE, "sk-test")

    @patch(POST)
    def test_null_content_is_unknown_error(self, mock_post):
        mock_post.return_value = _response(json_data=_completion(None))

        with pytest.raises(UnknownAnalysisError):
            OpenAIVisionClient().complete(IMAGE, "sk-test")
