"""Tests for brain.ai.client: prompt building and response handling (no network)."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from brain.ai.client import (
    AIClient,
    AIClientError,
    AIConnectionError,
    EmptyResponseError,
    InvalidResponseFormatError,
    MalformedResponseError,
    MissingAPIKeyError,
    MissingFieldError,
    RateLimitedError,
    UpstreamAPIError,
    parse_interpretation,
)
from brain.storage.models import GitCommit, GitContext, WorkingDirectoryChanges

VALID_PAYLOAD = {
    "summary": "Fixing token refresh",
    "technicalContext": "JWT refresh happens after expiry",
    "suggestedNextSteps": ["Add skew allowance"],
    "relatedFiles": ["src/auth.py"],
    "confidenceScore": 0.85,
}

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _completion(content: str | None) -> MagicMock:
    response = MagicMock()
    choice = MagicMock()
    choice.message.content = content
    response.choices = [choice]
    return response


def _client_returning(response) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create.return_value = response
    return client


def _client_raising(exc: Exception) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create.side_effect = exc
    return client


class TestGeneratePrompt:
    def test_includes_message_branch_and_repository(self, sample_git_context: GitContext):
        prompt = AIClient("sk-test").generate_prompt("tokens expire randomly", sample_git_context)
        assert 'Developer\'s Message: "tokens expire randomly"' in prompt
        assert "- Current Branch: feature/auth" in prompt
        assert "- Repository: /home/dana/webapp" in prompt

    def test_commits_use_short_hash_and_files(self, sample_git_context: GitContext):
        prompt = AIClient("sk-test").generate_prompt("m", sample_git_context)
        assert "- a1b2c3d: Add token refresh (src/auth.py, tests/test_auth.py)" in prompt
        assert "a1b2c3d4e5" not in prompt

    def test_limits_to_five_commits(self):
        commits = [
            GitCommit(hash=f"{i:07d}aaaa", message=f"commit {i}", timestamp="t", author="a")
            for i in range(8)
        ]
        context = GitContext("main", commits, WorkingDirectoryChanges(), "/repo")
        prompt = AIClient("sk-test").generate_prompt("m", context)
        assert "commit 4" in prompt
        assert "commit 5" not in prompt

    def test_change_sections(self, sample_git_context: GitContext):
        prompt = AIClient("sk-test").generate_prompt("m", sample_git_context)
        assert "Staged: src/auth.py" in prompt
        assert "Unstaged: src/middleware.py" in prompt
        assert "Untracked: notes.txt" in prompt

    def test_empty_sections_are_omitted(self):
        context = GitContext("main", [], WorkingDirectoryChanges(staged=["a.py"]), "/repo")
        prompt = AIClient("sk-test").generate_prompt("m", context)
        assert "Staged: a.py" in prompt
        assert "Unstaged:" not in prompt
        assert "Untracked:" not in prompt
        assert "No recent commits" in prompt

    def test_no_changes(self):
        context = GitContext("main", [], WorkingDirectoryChanges(), "/repo")
        assert "No changes" in AIClient("sk-test").generate_prompt("m", context)

    def test_deterministic_with_instruction_block(self, sample_git_context: GitContext):
        client = AIClient("sk-test")
        first = client.generate_prompt("m", sample_git_context)
        assert first == client.generate_prompt("m", sample_git_context)
        for name in ("summary", "technicalContext", "suggestedNextSteps", "relatedFiles", "confidenceScore"):
            assert f'"{name}"' in first
        assert "0.0-1.0" in first


class TestAnalyzeContext:
    def test_missing_key_makes_no_request(self, sample_git_context: GitContext):
        sdk = MagicMock()
        with pytest.raises(MissingAPIKeyError, match="API key is required"):
            AIClient("  ", client=sdk).analyze_context("m", sample_git_context)
        sdk.chat.completions.create.assert_not_called()

    def test_request_shape(self, sample_git_context: GitContext):
        sdk = _client_returning(_completion(json.dumps(VALID_PAYLOAD)))
        AIClient("sk-test", model="gpt-4o", client=sdk).analyze_context("m", sample_git_context)

        kwargs = sdk.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1000
        assert len(kwargs["messages"]) == 1
        assert kwargs["messages"][0]["role"] == "user"
        assert "Developer's Message" in kwargs["messages"][0]["content"]

    def test_parses_interpretation(self, sample_git_context: GitContext):
        sdk = _client_returning(_completion(json.dumps(VALID_PAYLOAD)))
        result = AIClient("sk-test", client=sdk).analyze_context("m", sample_git_context)
        assert result.summary == "Fixing token refresh"
        assert result.technical_context == "JWT refresh happens after expiry"
        assert result.suggested_next_steps == ["Add skew allowance"]
        assert result.related_files == ["src/auth.py"]
        assert result.confidence_score == 0.85

    def test_no_choices(self, sample_git_context: GitContext):
        response = MagicMock()
        response.choices = []
        sdk = _client_returning(response)
        with pytest.raises(EmptyResponseError, match="No response from AI"):
            AIClient("sk-test", client=sdk).analyze_context("m", sample_git_context)

    def test_rate_limited(self, sample_git_context: GitContext):
        exc = openai.RateLimitError(
            "Rate limit reached", response=httpx.Response(429, request=_REQUEST), body=None
        )
        client = AIClient("sk-test", client=_client_raising(exc))
        with pytest.raises(RateLimitedError, match="rate limit exceeded"):
            client.analyze_context("m", sample_git_context)

    def test_upstream_error_carries_status_and_message(self, sample_git_context: GitContext):
        exc = openai.InternalServerError(
            "Error code: 500",
            response=httpx.Response(500, request=_REQUEST),
            body={"message": "The server had an error"},
        )
        client = AIClient("sk-test", client=_client_raising(exc))
        with pytest.raises(UpstreamAPIError) as info:
            client.analyze_context("m", sample_git_context)
        assert info.value.status_code == 500
        assert "The server had an error" in str(info.value)
        assert not isinstance(info.value, RateLimitedError)

    def test_429_distinguishable_from_500(self, sample_git_context: GitContext):
        errors = []
        for status, cls in ((429, openai.RateLimitError), (500, openai.InternalServerError)):
            exc = cls("err", response=httpx.Response(status, request=_REQUEST), body=None)
            try:
                AIClient("sk-test", client=_client_raising(exc)).analyze_context("m", sample_git_context)
            except AIClientError as e:
                errors.append(e)
        assert type(errors[0]) is RateLimitedError
        assert type(errors[1]) is UpstreamAPIError

    def test_connection_failure(self, sample_git_context: GitContext):
        exc = openai.APIConnectionError(request=_REQUEST)
        client = AIClient("sk-test", client=_client_raising(exc))
        with pytest.raises(AIConnectionError, match="Failed to connect"):
            client.analyze_context("m", sample_git_context)

    def test_check_connection_propagates_failures(self):
        client = AIClient("")
        with pytest.raises(MissingAPIKeyError):
            client.check_connection()

    def test_check_connection_ok(self):
        sdk = _client_returning(_completion(json.dumps(VALID_PAYLOAD)))
        assert AIClient("sk-test", client=sdk).check_connection() is True


class TestParseInterpretation:
    def test_invalid_json(self):
        with pytest.raises(MalformedResponseError, match="invalid JSON"):
            parse_interpretation("not json at all")

    def test_none_content(self):
        with pytest.raises(MalformedResponseError):
            parse_interpretation(None)

    def test_code_fences(self):
        result = parse_interpretation(f"```json\n{json.dumps(VALID_PAYLOAD)}\n```")
        assert result.summary == "Fixing token refresh"

    @pytest.mark.parametrize("field", list(VALID_PAYLOAD))
    def test_missing_field(self, field):
        payload = {k: v for k, v in VALID_PAYLOAD.items() if k != field}
        with pytest.raises(MissingFieldError, match="missing required fields"):
            parse_interpretation(json.dumps(payload))

    def test_non_numeric_confidence(self):
        payload = {**VALID_PAYLOAD, "confidenceScore": "high"}
        with pytest.raises(MissingFieldError):
            parse_interpretation(json.dumps(payload))

    def test_clamps_high_confidence(self):
        payload = {**VALID_PAYLOAD, "confidenceScore": 1.5}
        assert parse_interpretation(json.dumps(payload)).confidence_score == 1.0

    def test_clamps_negative_confidence(self):
        payload = {**VALID_PAYLOAD, "confidenceScore": -0.2}
        assert parse_interpretation(json.dumps(payload)).confidence_score == 0.0

    def test_non_array_lists(self):
        payload = {**VALID_PAYLOAD, "relatedFiles": "src/auth.py"}
        with pytest.raises(InvalidResponseFormatError, match="must be arrays"):
            parse_interpretation(json.dumps(payload))

    def test_empty_arrays_are_allowed(self):
        payload = {**VALID_PAYLOAD, "suggestedNextSteps": [], "relatedFiles": []}
        result = parse_interpretation(json.dumps(payload))
        assert result.suggested_next_steps == []
