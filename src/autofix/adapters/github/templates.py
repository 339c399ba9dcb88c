"""Pull request and commit message text for auto-fixes."""

from typing import Optional

from autofix.agents.base import AnalysisResult
from autofix.core.fingerprint import NormalizedError, extract_error_type

MAX_TITLE_LENGTH = 79
FALLBACK_DESCRIPTION = "Fix production error"


def generate_pr_title(error: NormalizedError, analysis: AnalysisResult) -> str:
    """Conventional-commit style title, shorter than 80 characters."""
    prefix = f"fix({error.service_name}): "
    description = (
        analysis.suggested_fix.description if analysis.suggested_fix else FALLBACK_DESCRIPTION
    )

    if len(prefix) + len(description) > MAX_TITLE_LENGTH:
        room = max(MAX_TITLE_LENGTH - len(prefix) - 3, 0)
        description = description[:room].rstrip() + "..."

    return prefix + description


def generate_pr_body(
    error: NormalizedError,
    analysis: AnalysisResult,
    files_changed: list,
    fingerprint: str,
) -> str:
    """Markdown body explaining the error, the diagnosis and the fix.

    Args:
        error: The production error
        analysis: Analyzer verdict
        files_changed: Repository-relative paths touched by the fix
        fingerprint: Error fingerprint

    Returns:
        PR body
    """
    error_type = error.error_type or extract_error_type(error.message) or "Unknown"
    description = analysis.suggested_fix.description if analysis.suggested_fix else ""

    lines = [
        "## Auto-Fix: Production Error",
        "",
        "This pull request was opened automatically in response to an error "
        "observed in production. Review it carefully before merging.",
        "",
        "### Error Details",
        "",
        f"- **Service:** {error.service_name}",
        f"- **Environment:** {error.environment_name}",
        f"- **Error Type:** {error_type}",
        f"- **First Seen:** {error.timestamp.isoformat()}",
        "",
        "```",
        error.message,
        "```",
        "",
    ]

    if error.stack_trace:
        lines += [
            "<details>",
            "<summary>Stack Trace</summary>",
            "",
            "```",
            error.stack_trace,
            "```",
            "",
            "</details>",
            "",
        ]

    lines += [
        "### Root Cause Analysis",
        "",
        analysis.root_cause,
        "",
        f"**Why this is fixable:** {analysis.reason}",
        "",
    ]

    if description:
        lines += ["### Fix", "", description, ""]

    lines += ["### Files Changed", ""]
    lines += [f"- `{path}`" for path in files_changed]
    lines.append("")

    if analysis.test_suggestion:
        lines += ["### Testing Suggestions", "", analysis.test_suggestion, ""]

    lines += [
        "### Verification Checklist",
        "",
        "- [ ] The change addresses the root cause, not just the symptom",
        "- [ ] No unrelated code was modified",
        "- [ ] Tests pass locally and in CI",
        "- [ ] The error no longer appears after deploying to a staging environment",
        "",
        "---",
        "",
        f"**Confidence:** {analysis.confidence}",
        f"**Fingerprint:** `{fingerprint}`",
    ]

    return "\n".join(lines) + "\n"


def generate_commit_message(
    error: NormalizedError,
    analysis: AnalysisResult,
    fingerprint: str,
    description: Optional[str] = None,
) -> str:
    """Commit message recording the diagnosis and fingerprint."""
    if description is None:
        description = (
            analysis.suggested_fix.description if analysis.suggested_fix else FALLBACK_DESCRIPTION
        )

    return (
        f"fix({error.service_name}): {description}\n\n"
        f"Root cause: {analysis.root_cause}\n\n"
        "Auto-generated fix for production error.\n"
        f"Fingerprint: {fingerprint}\n"
        f"Confidence: {analysis.confidence}"
    )
