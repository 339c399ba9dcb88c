"""Unit tests for the GitHub pull request adapter."""

import subprocess
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest

from autofix.adapters.github.client import PRCreator
from autofix.adapters.github.templates import (
    generate_commit_message,
    generate_pr_body,
    generate_pr_title,
)
from autofix.agents.base import AnalysisResult
from autofix.core.code_fixer import FixResult
from autofix.core.fingerprint import NormalizedError
from autofix.exceptions import PlatformError


@pytest.fixture
def error():
    """A production error with a stack trace."""
    return NormalizedError(
        timestamp=datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
        message="TypeError: Cannot read property 'name' of undefined",
        service_name="api",
        environment_name="production",
        project_id="proj-1",
        stack_trace="    at getUser (src/service.ts:10:5)",
    )


def make_analysis(description="Add optional chaining", test_suggestion="Call with no user"):
    return AnalysisResult.model_validate(
        {
            "canFix": True,
            "reason": "Missing null check",
            "rootCause": "user may be undefined",
            "confidence": "high",
            "testSuggestion": test_suggestion,
            "suggestedFix": {
                "description": description,
                "files": [
                    {
                        "path": "src/service.ts",
                        "changes": [{"type": "replace", "search": "user.name", "replace": "user?.name"}],
                    }
                ],
            },
        }
    )


@pytest.fixture
def fix_result():
    """A pushed fix."""
    return FixResult(success=True, branch_name="autofix/err-abc", files_changed=["src/service.ts"])


class TestTemplates:
    """Test PR and commit text."""

    def test_title(self, error):
        """Test the conventional title."""
        assert generate_pr_title(error, make_analysis()) == "fix(api): Add optional chaining"

    def test_long_title_truncated(self, error):
        """Test titles stay under 80 characters."""
        title = generate_pr_title(error, make_analysis(description="word " * 40))
        assert len(title) <= 79
        assert title.startswith("fix(api): ")
        assert title.endswith("...")

    def test_body_sections(self, error):
        """Test the body explains error, cause and fix."""
        body = generate_pr_body(error, make_analysis(), ["src/service.ts"], "abc123")

        assert body.startswith("## Auto-Fix: Production Error")
        assert "- **Service:** api" in body
        assert "- **Error Type:** TypeError" in body
        assert "- **First Seen:** 2024-01-15T10:00:00+00:00" in body
        assert "<summary>Stack Trace</summary>" in body
        assert "user may be undefined" in body
        assert "- `src/service.ts`" in body
        assert "### Testing Suggestions" in body
        assert "- [ ]" in body
        assert "**Confidence:** high" in body
        assert "**Fingerprint:** `abc123`" in body

    def test_body_optional_sections(self, error):
        """Test stack and testing sections are omitted when empty."""
        bare = NormalizedError(
            timestamp=error.timestamp,
            message="boom",
            service_name="api",
            environment_name="production",
            project_id="proj-1",
        )
        body = generate_pr_body(bare, make_analysis(test_suggestion=None), ["a.ts"], "abc")

        assert "Stack Trace" not in body
        assert "### Testing Suggestions" not in body
        assert "- **Error Type:** Unknown" in body

    def test_commit_message(self, error):
        """Test the commit message carries diagnosis and fingerprint."""
        message = generate_commit_message(error, make_analysis(), "abc123")

        assert message.splitlines()[0] == "fix(api): Add optional chaining"
        assert "Root cause: user may be undefined" in message
        assert "Fingerprint: abc123" in message
        assert "Confidence: high" in message


class TestPRCreator:
    """Test PRCreator with a mocked gh CLI."""

    @pytest.fixture
    def creator(self, tmp_path):
        """PR creator rooted in a temp dir."""
        return PRCreator(tmp_path)

    def test_name(self, creator):
        """Test platform name."""
        assert creator.name == "github"

    @patch("subprocess.run")
    def test_create_pr(self, mock_run, creator, error, fix_result):
        """Test a PR is created and labelled."""
        mock_run.side_effect = [
            Mock(returncode=0, stdout="Logged in", stderr=""),
            Mock(
                returncode=0,
                stdout="Creating pull request\nhttps://github.com/o/r/pull/42\n",
                stderr="",
            ),
            Mock(returncode=0, stdout="", stderr=""),
        ]

        result = creator.create_pr("autofix/err-abc", error, make_analysis(), fix_result)

        assert result.success
        assert result.pr_url == "https://github.com/o/r/pull/42"
        assert result.pr_number == 42

        create_args = mock_run.call_args_list[1][0][0]
        assert create_args[:5] == ["gh", "pr", "create", "--head", "autofix/err-abc"]
        assert create_args[6] == "fix(api): Add optional chaining"
        assert "## Auto-Fix: Production Error" in create_args[8]
        assert mock_run.call_args_list[2][0][0] == [
            "gh", "pr", "edit", "42", "--add-label", "auto-fix,production-error",
        ]

    @patch("subprocess.run")
    def test_label_failure_is_not_fatal(self, mock_run, creator, error, fix_result):
        """Test missing labels do not fail PR creation."""
        mock_run.side_effect = [
            Mock(returncode=0, stdout="", stderr=""),
            Mock(returncode=0, stdout="https://github.com/o/r/pull/7\n", stderr=""),
            Mock(returncode=1, stdout="", stderr="label not found"),
        ]

        assert creator.create_pr("b", error, make_analysis(), fix_result).success

    @patch("subprocess.run")
    def test_not_authenticated(self, mock_run, creator, error, fix_result):
        """Test an unauthenticated gh is reported."""
        mock_run.return_value = Mock(returncode=1, stdout="", stderr="not logged in")

        result = creator.create_pr("b", error, make_analysis(), fix_result)

        assert not result.success
        assert "not authenticated" in result.error
        assert mock_run.call_count == 1

    @patch("subprocess.run")
    def test_create_failure(self, mock_run, creator, error, fix_result):
        """Test gh failures become failed results."""
        mock_run.side_effect = [
            Mock(returncode=0, stdout="", stderr=""),
            subprocess.CalledProcessError(1, ["gh"], stderr="a pull request already exists"),
        ]

        result = creator.create_pr("b", error, make_analysis(), fix_result)

        assert not result.success
        assert "a pull request already exists" in result.error

    @patch("subprocess.run")
    def test_gh_missing(self, mock_run, creator):
        """Test a missing gh binary raises PlatformError."""
        mock_run.side_effect = FileNotFoundError("gh")

        with pytest.raises(PlatformError, match="not found"):
            creator.validate_connection()

    @patch("subprocess.run")
    def test_token_passed_through(self, mock_run, creator, monkeypatch):
        """Test GITHUB_TOKEN is exposed to gh as GH_TOKEN."""
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
        monkeypatch.delenv("GH_TOKEN", raising=False)
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")

        creator.validate_connection()

        assert mock_run.call_args.kwargs["env"]["GH_TOKEN"] == "ghp_test"

    @patch("subprocess.run")
    def test_pr_exists(self, mock_run, creator):
        """Test checking for an open PR on a branch."""
        mock_run.return_value = Mock(returncode=0, stdout='[{"number": 3}]', stderr="")
        assert creator.pr_exists("autofix/err-abc")

        mock_run.return_value = Mock(returncode=0, stdout="[]", stderr="")
        assert not creator.pr_exists("autofix/err-abc")

    @patch("subprocess.run")
    def test_get_pr_url(self, mock_run, creator):
        """Test PR URL lookup."""
        mock_run.return_value = Mock(returncode=0, stdout="https://github.com/o/r/pull/3\n", stderr="")
        assert creator.get_pr_url("b") == "https://github.com/o/r/pull/3"

        mock_run.return_value = Mock(returncode=1, stdout="", stderr="no pull requests found")
        assert creator.get_pr_url("b") is None

    @patch("subprocess.run")
    def test_add_comment(self, mock_run, creator):
        """Test commenting on a PR."""
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")

        creator.add_comment(12, "Still failing after deploy")

        assert mock_run.call_args[0][0] == [
            "gh", "pr", "comment", "12", "--body", "Still failing after deploy"
        ]

    @patch("subprocess.run")
    def test_add_comment_failure(self, mock_run, creator):
        """Test a failed comment raises PlatformError."""
        mock_run.side_effect = subprocess.CalledProcessError(1, ["gh"], stderr="not found")

        with pytest.raises(PlatformError, match="gh pr comment 12"):
            creator.add_comment(12, "hello")
