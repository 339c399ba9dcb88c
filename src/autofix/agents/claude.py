"""Claude-backed error analyzer.

Sends the error, its stack trace and the source files it references to the
Anthropic Messages API and validates the JSON verdict that comes back.
"""

import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, Optional

import anthropic
from pydantic import ValidationError as PydanticValidationError

from autofix.agents.base import AnalysisResult, ErrorAnalyzer
from autofix.agents.code_context import extract_code_context
from autofix.agents.prompts import ANALYSIS_SYSTEM_PROMPT, create_analysis_prompt
from autofix.core.fingerprint import NormalizedError
from autofix.exceptions import AgentError

logger = logging.getLogger(__name__)

MAX_TOKENS = 4096
REQUEST_TIMEOUT = 120.0

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")
_BARE_JSON = re.compile(r"\{[\s\S]*\}")

# Keys whose empty values fall back to the model defaults.
_DEFAULTED_KEYS = ("reason", "rootCause", "root_cause", "confidence")


def extract_json(text: str) -> Dict[str, Any]:
    """Pull the JSON object out of a model reply.

    Prefers a fenced ```json block, otherwise takes everything from the
    first ``{`` to the last ``}``.

    Raises:
        AgentError: If no parseable JSON object is present
    """
    match = _FENCED_JSON.search(text)
    json_text = match.group(1) if match else None
    if json_text is None:
        bare = _BARE_JSON.search(text)
        json_text = bare.group(0) if bare else None

    if json_text is None:
        raise AgentError("No JSON found in Claude response", agent_type="claude", operation="analyze")

    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise AgentError(
            f"Claude response is not valid JSON: {e}", agent_type="claude", operation="analyze"
        ) from e

    if not isinstance(data, dict):
        raise AgentError("Claude response JSON is not an object", agent_type="claude", operation="analyze")
    return data


def parse_analysis_response(text: str) -> AnalysisResult:
    """Turn a model reply into a validated analysis result.

    Args:
        text: Raw text of the reply

    Returns:
        Validated analysis

    Raises:
        AgentError: If the reply lacks a boolean ``canFix`` or is malformed
    """
    data = extract_json(text)

    if not isinstance(data.get("canFix", data.get("can_fix")), bool):
        raise AgentError("Invalid response: missing canFix", agent_type="claude", operation="analyze")

    for key in _DEFAULTED_KEYS:
        if key in data and not data[key]:
            del data[key]
    if not data.get("canFix", data.get("can_fix")):
        # Proposals attached to a negative verdict are never applied.
        data.pop("suggestedFix", None)
        data.pop("suggested_fix", None)

    try:
        return AnalysisResult.model_validate(data)
    except PydanticValidationError as e:
        raise AgentError(
            f"Invalid analysis response: {e.error_count()} validation error(s)",
            agent_type="claude",
            operation="analyze",
            context={"errors": "; ".join(err["msg"] for err in e.errors())},
        ) from e


class ClaudeErrorAnalyzer(ErrorAnalyzer):
    """Error analyzer using the Anthropic Messages API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        working_dir: Path,
        client: Optional[anthropic.Anthropic] = None,
        max_retries: int = 2,
        base_retry_delay: float = 2.0,
    ) -> None:
        """Initialize the analyzer.

        Args:
            api_key: Anthropic API key
            model: Claude model identifier
            working_dir: Repository root used to read source context
            client: Preconfigured SDK client (built from ``api_key`` if omitted)
            max_retries: Retries on rate-limit responses
            base_retry_delay: Base delay in seconds for exponential backoff
        """
        if client is None and not api_key:
            raise AgentError("Anthropic API key is required", agent_type="claude")

        self.model = model
        self.working_dir = Path(working_dir)
        self.max_retries = max_retries
        self.base_retry_delay = base_retry_delay
        self.client = client or anthropic.Anthropic(
            api_key=api_key, timeout=REQUEST_TIMEOUT, max_retries=0
        )

    @property
    def name(self) -> str:
        """Analyzer name."""
        return "claude"

    def analyze(self, error: NormalizedError) -> AnalysisResult:
        """Ask Claude whether the error can be fixed automatically."""
        relevant_code = extract_code_context(self.working_dir, error.message, error.stack_trace)
        logger.debug(f"Sending {len(relevant_code)} source file(s) as context")

        prompt = create_analysis_prompt(
            error_message=error.message,
            stack_trace=error.stack_trace,
            service_name=error.service_name,
            environment_name=error.environment_name,
            relevant_code=relevant_code,
        )

        result = parse_analysis_response(self._call_claude(prompt))
        logger.info(
            f"Analysis: can_fix={result.can_fix}, confidence={result.confidence}, "
            f"reason={result.reason}"
        )
        return result

    def _call_claude(self, prompt: str) -> str:
        """Send the prompt and return the first text block of the reply.

        Raises:
            AgentError: On API failures or an empty reply
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                message = self.client.messages.create(
                    model=self.model,
                    max_tokens=MAX_TOKENS,
                    system=ANALYSIS_SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": prompt}],
                )
                break

            except anthropic.RateLimitError as e:
                last_error = e
                if attempt < self.max_retries:
                    delay = self.base_retry_delay * (2**attempt)
                    logger.warning(f"Claude rate limited, retrying in {delay:.1f}s")
                    time.sleep(delay)

            except anthropic.APIConnectionError as e:
                raise AgentError(
                    f"Claude API connection failed: {e}", agent_type="claude", operation="analyze"
                ) from e

            except anthropic.APIStatusError as e:
                raise AgentError(
                    f"Claude API error (status {e.status_code}): {e.message}",
                    agent_type="claude",
                    operation="analyze",
                ) from e
        else:
            raise AgentError(
                f"Claude API rate limit exceeded after {self.max_retries + 1} attempts: {last_error}",
                agent_type="claude",
                operation="analyze",
            )

        for block in message.content:
            if getattr(block, "type", None) == "text":
                return block.text

        raise AgentError("No text response from Claude", agent_type="claude", operation="analyze")
