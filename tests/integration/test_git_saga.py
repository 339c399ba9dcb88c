"""Integration tests for fix application against real git repositories."""

import shutil
import subprocess

import pytest

from autofix.adapters.git.basic import GitOps, parse_github_remote
from autofix.agents.base import Edit, FileChange, SuggestedFix
from autofix.core.code_fixer import CodeFixer
from autofix.core.validators import ValidationResult

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(cwd, *args):
    return subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    ).stdout.strip()


@pytest.fixture
def repo(tmp_path):
    """Clone of a bare origin with one commit on main."""
    origin = tmp_path / "origin.git"
    git(tmp_path, "init", "--bare", "-b", "main", str(origin))

    work = tmp_path / "work"
    git(tmp_path, "clone", str(origin), str(work))
    git(work, "symbolic-ref", "HEAD", "refs/heads/main")
    git(work, "config", "user.name", "Test")
    git(work, "config", "user.email", "test@example.com")
    (work / "src").mkdir()
    (work / "src" / "service.ts").write_text("export const name = (user) => user.name;\n")
    git(work, "add", ".")
    git(work, "commit", "-m", "initial")
    git(work, "push", "-u", "origin", "main")
    return work


def make_fix(search="user.name", replace="user?.name"):
    return SuggestedFix(
        description="Guard against missing user",
        files=[
            FileChange(
                path="src/service.ts",
                changes=[Edit(type="replace", search=search, replace=replace)],
            )
        ],
    )


def ok_validator(working_dir, files):
    return ValidationResult(valid=True)


class TestGitOps:
    """Test git primitives."""

    def test_branch_queries(self, repo):
        """Test current, default and existing branches."""
        ops = GitOps(repo)
        assert ops.get_current_branch() == "main"
        assert ops.get_default_branch() == "main"
        assert ops.branch_exists("main")
        assert not ops.branch_exists("autofix/err-x")

    def test_stash_round_trip(self, repo):
        """Test uncommitted and untracked work survives a stash."""
        ops = GitOps(repo)
        assert ops.stash() is False

        (repo / "notes.txt").write_text("wip")
        assert not ops.is_clean()
        assert ops.stash() is True
        assert ops.is_clean()

        ops.unstash()
        assert (repo / "notes.txt").read_text() == "wip"

    def test_parse_github_remote(self):
        """Test GitHub remote URL parsing."""
        assert parse_github_remote("git@github.com:acme/api.git") == ("acme", "api")
        assert parse_github_remote("https://github.com/acme/api") == ("acme", "api")
        assert parse_github_remote("https://gitlab.com/acme/api.git") is None


class TestCodeFixerSaga:
    """Test the full apply, commit and push flow."""

    def test_success(self, repo):
        """Test the fix lands on a pushed branch and the tree is restored."""
        (repo / "scratch.txt").write_text("local work")
        fixer = CodeFixer(
            repo,
            git=GitOps(repo, user_name="Auto-Fix Agent", user_email="autofix@example.com"),
            validator=ok_validator,
        )

        result = fixer.apply_fix(make_fix(), "0123456789abcdef", commit_message="fix(api): guard")

        assert result.success, result.error
        assert result.branch_name == "autofix/err-0123456789abcdef"
        assert git(repo, "rev-parse", "--abbrev-ref", "HEAD") == "main"
        assert (repo / "src" / "service.ts").read_text() == "export const name = (user) => user.name;\n"
        assert (repo / "scratch.txt").read_text() == "local work"

        fixed = git(repo, "show", "origin/autofix/err-0123456789abcdef:src/service.ts")
        assert fixed == "export const name = (user) => user?.name;"
        assert git(repo, "log", "-1", "--format=%an|%s", "autofix/err-0123456789abcdef") == (
            "Auto-Fix Agent|fix(api): guard"
        )

    def test_missing_anchor_rolls_back(self, repo):
        """Test a failed edit leaves no branch and no changes behind."""
        (repo / "scratch.txt").write_text("local work")
        fixer = CodeFixer(repo, git=GitOps(repo), validator=ok_validator)

        result = fixer.apply_fix(make_fix(search="user.email"), "0123456789abcdef")

        assert not result.success
        assert "Search string not found in src/service.ts" in result.error
        assert git(repo, "rev-parse", "--abbrev-ref", "HEAD") == "main"
        assert git(repo, "branch", "--list", "autofix/*") == ""
        assert git(repo, "status", "--porcelain") == "?? scratch.txt"

    def test_validation_failure_rolls_back(self, repo):
        """Test a failed validation discards the edit and the branch."""
        fixer = CodeFixer(
            repo,
            git=GitOps(repo),
            validator=lambda working_dir, files: ValidationResult(valid=False, errors=["broken"]),
        )

        result = fixer.apply_fix(make_fix(), "0123456789abcdef")

        assert not result.success
        assert result.validation_errors == ["broken"]
        assert git(repo, "status", "--porcelain") == ""
        assert git(repo, "branch", "--list", "autofix/*") == ""

    def test_existing_branch_blocks_retry(self, repo):
        """Test a leftover fix branch stops a second attempt."""
        git(repo, "branch", "autofix/err-0123456789abcdef")
        fixer = CodeFixer(repo, git=GitOps(repo), validator=ok_validator)

        result = fixer.apply_fix(make_fix(), "0123456789abcdef")

        assert not result.success
        assert result.error == "Branch autofix/err-0123456789abcdef already exists"
        assert (repo / "src" / "service.ts").read_text() == "export const name = (user) => user.name;\n"
