"""Unit tests for git primitives with a mocked git binary."""

import subprocess
from unittest.mock import Mock, patch

import pytest

from autofix.adapters.git.basic import GitOps
from autofix.exceptions import GitOperationError


@pytest.fixture
def ops(tmp_path):
    """Git operations rooted in a temp dir."""
    return GitOps(tmp_path)


class TestGitOps:
    """Test GitOps command handling."""

    @patch("subprocess.run")
    def test_get_repo_info_ssh(self, mock_run, ops):
        """Test owner and repo come from an SSH remote."""
        mock_run.return_value = Mock(returncode=0, stdout="git@github.com:acme/api.git\n", stderr="")

        assert ops.get_repo_info() == ("acme", "api")
        assert mock_run.call_args[0][0] == ["git", "remote", "get-url", "origin"]

    @patch("subprocess.run")
    def test_get_repo_info_https(self, mock_run, ops):
        """Test owner and repo come from an HTTPS remote."""
        mock_run.return_value = Mock(returncode=0, stdout="https://github.com/acme/api\n", stderr="")
        assert ops.get_repo_info() == ("acme", "api")

    @patch("subprocess.run")
    def test_get_repo_info_not_github(self, mock_run, ops):
        """Test non-GitHub remotes yield None."""
        mock_run.return_value = Mock(returncode=0, stdout="https://gitlab.com/acme/api.git\n", stderr="")
        assert ops.get_repo_info() is None

    @patch("subprocess.run")
    def test_get_repo_info_no_remote(self, mock_run, ops):
        """Test a missing remote yields None."""
        mock_run.return_value = Mock(returncode=2, stdout="", stderr="error: No such remote 'origin'")
        assert ops.get_repo_info() is None

    @patch("subprocess.run")
    def test_command_failure(self, mock_run, ops):
        """Test failing commands raise GitOperationError."""
        mock_run.side_effect = subprocess.CalledProcessError(
            128, ["git", "push"], stderr="fatal: could not read from remote"
        )

        with pytest.raises(GitOperationError, match="could not read from remote"):
            ops.push("autofix/err-abc")
