"""Interprets a work note's git context with an OpenAI chat completion.

The model is asked for a JSON object with five fields (summary,
technicalContext, suggestedNextSteps, relatedFiles, confidenceScore). Every
failure mode raises its own AIClientError subclass so callers can decide
whether to save the note without an interpretation or to stop.
"""

from __future__ import annotations

import json
import logging

import openai

from brain.storage.models import AIInterpretation, GitContext, WorkingDirectoryChanges

logger = logging.getLogger(__name__)

TEMPERATURE = 0.3
MAX_TOKENS = 1000
MAX_PROMPT_COMMITS = 5
REQUIRED_FIELDS = (
    "summary",
    "technicalContext",
    "suggestedNextSteps",
    "relatedFiles",
    "confidenceScore",
)

ANALYSIS_PROMPT = """\
You are a senior software developer helping analyze a coding context. A developer \
has saved their current thoughts along with git repository information.

Developer's Message: "{message}"

Git Context:
- Current Branch: {branch}
- Repository: {repository}

Recent Commits:
{commits}

Working Directory Changes:
{changes}

Please analyze this context and provide insights in JSON format with these exact fields:
{{
  "summary": "Brief summary of what the developer is working on",
  "technicalContext": "Technical analysis of the code changes and patterns",
  "suggestedNextSteps": ["Array of specific actionable next steps"],
  "relatedFiles": ["Array of files that might be relevant to continue the work"],
  "confidenceScore": 0.0-1.0 (how confident you are in this analysis)
}}

Focus on being practical and actionable. Consider the recent commit patterns, \
file changes, and the developer's stated concerns.
"""


class AIClientError(RuntimeError):
    """Base class for interpretation failures."""


class MissingAPIKeyError(AIClientError):
    """No API key configured; no request was made."""


class RateLimitedError(AIClientError):
    """The API answered 429."""


class UpstreamAPIError(AIClientError):
    """The API answered with a non-2xx status other than 429."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"OpenAI API error ({status_code}): {message}")
        self.status_code = status_code


class AIConnectionError(AIClientError):
    """The API could not be reached."""


class EmptyResponseError(AIClientError):
    """The completion contained no choices."""


class MalformedResponseError(AIClientError):
    """The completion content was not a JSON document."""


class InvalidResponseFormatError(AIClientError):
    """The JSON document did not match the expected shape."""


class MissingFieldError(InvalidResponseFormatError):
    """A required field was absent or empty."""


def _format_commits(git_context: GitContext) -> str:
    lines = [
        f"- {c.hash[:7]}: {c.message} ({', '.join(c.files_changed)})"
        for c in git_context.recent_commits[:MAX_PROMPT_COMMITS]
    ]
    return "\n".join(lines) or "No recent commits"


def _format_changes(changes: WorkingDirectoryChanges) -> str:
    lines = []
    if changes.staged:
        lines.append(f"Staged: {', '.join(changes.staged)}")
    if changes.unstaged:
        lines.append(f"Unstaged: {', '.join(changes.unstaged)}")
    if changes.untracked:
        lines.append(f"Untracked: {', '.join(changes.untracked)}")
    return "\n".join(lines) or "No changes"


def _strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()
    return text


def parse_interpretation(content: str | None) -> AIInterpretation:
    """Validate the model's JSON answer and build an AIInterpretation."""
    try:
        data = json.loads(_strip_code_fences(content or ""))
    except json.JSONDecodeError as e:
        raise MalformedResponseError("Failed to parse AI response: invalid JSON format") from e

    if not isinstance(data, dict):
        raise MalformedResponseError("Failed to parse AI response: expected a JSON object")

    missing = [
        name
        for name in REQUIRED_FIELDS
        if data.get(name) is None or (isinstance(data[name], str) and not data[name].strip())
    ]
    score = data.get("confidenceScore")
    if "confidenceScore" not in missing and (
        isinstance(score, bool) or not isinstance(score, (int, float))
    ):
        missing.append("confidenceScore")
    if missing:
        raise MissingFieldError(
            f"Invalid AI response format: missing required fields ({', '.join(missing)})"
        )

    if not isinstance(data["suggestedNextSteps"], list) or not isinstance(
        data["relatedFiles"], list
    ):
        raise InvalidResponseFormatError(
            "Invalid AI response format: suggestedNextSteps and relatedFiles must be arrays"
        )

    return AIInterpretation(
        summary=str(data["summary"]),
        technical_context=str(data["technicalContext"]),
        suggested_next_steps=[str(s) for s in data["suggestedNextSteps"]],
        related_files=[str(f) for f in data["relatedFiles"]],
        confidence_score=max(0.0, min(1.0, float(score))),
    )


class AIClient:
    """Thin wrapper around the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str | None,
        model: str = "gpt-4",
        client: openai.OpenAI | None = None,
        base_url: str | None = None,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self.model = model
        self._base_url = base_url or None
        self._client = client

    def _get_client(self) -> openai.OpenAI:
        if self._client is None:
            # One request per note; no SDK-level retries.
            self._client = openai.OpenAI(
                api_key=self._api_key, base_url=self._base_url, max_retries=0
            )
        return self._client

    def generate_prompt(self, message: str, git_context: GitContext) -> str:
        return ANALYSIS_PROMPT.format(
            message=message,
            branch=git_context.current_branch,
            repository=git_context.repository_path,
            commits=_format_commits(git_context),
            changes=_format_changes(git_context.working_directory_changes),
        )

    def analyze_context(self, message: str, git_context: GitContext) -> AIInterpretation:
        if not self._api_key:
            raise MissingAPIKeyError("OpenAI API key is required")

        prompt = self.generate_prompt(message, git_context)

        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=TEMPERATURE,
                max_tokens=MAX_TOKENS,
            )
        except openai.RateLimitError as e:
            logger.warning(f"Rate limited by OpenAI: {e}")
            raise RateLimitedError(
                "OpenAI API rate limit exceeded. Please try again later."
            ) from e
        except openai.APIStatusError as e:
            detail = e.message
            if isinstance(e.body, dict) and e.body.get("message"):
                detail = e.body["message"]
            logger.error(f"OpenAI API error {e.status_code}: {detail}")
            raise UpstreamAPIError(e.status_code, detail or "Unknown error") from e
        except openai.APIConnectionError as e:
            logger.error(f"Could not reach OpenAI: {e}")
            raise AIConnectionError(f"Failed to connect to OpenAI API: {e}") from e

        if not response.choices:
            raise EmptyResponseError("No response from AI")

        return parse_interpretation(response.choices[0].message.content)

    def check_connection(self) -> bool:
        """Run a minimal analysis. Failures propagate to the caller."""
        probe = GitContext(
            current_branch="main",
            recent_commits=[],
            working_directory_changes=WorkingDirectoryChanges(),
            repository_path="/test",
        )
        self.analyze_context("Connection test", probe)
        return True
