"""Git primitives used by the fix applier.

Every operation shells out to ``git`` in the configured working directory
with an argument list, never through a shell.
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from autofix.exceptions import GitOperationError

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 60

_SSH_REMOTE = re.compile(r"git@github\.com:([^/]+)/(.+?)(?:\.git)?$")
_HTTPS_REMOTE = re.compile(r"https://github\.com/([^/]+)/(.+?)(?:\.git)?$")


class GitOps:
    """Thin wrapper over the git CLI for one repository."""

    def __init__(
        self,
        working_dir: Path,
        user_name: str = "Auto-Fix Agent",
        user_email: str = "autofix@infraprint.dev",
        remote: str = "origin",
    ) -> None:
        """Initialize git operations.

        Args:
            working_dir: Repository root
            user_name: Commit author name
            user_email: Commit author email
            remote: Name of the remote to fetch from and push to
        """
        self.working_dir = Path(working_dir)
        self.user_name = user_name
        self.user_email = user_email
        self.remote = remote

    def _run_git(
        self, args: Sequence[str], check: bool = True, timeout: int = GIT_TIMEOUT
    ) -> subprocess.CompletedProcess:
        """Run a git command.

        Args:
            args: Command arguments (without 'git' prefix)
            check: Whether to raise on non-zero exit code
            timeout: Command timeout in seconds

        Returns:
            Completed process result

        Raises:
            GitOperationError: If the command fails and check=True
        """
        operation = args[0] if args else "git"
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.working_dir,
                capture_output=True,
                text=True,
                check=check,
                timeout=timeout,
            )

        except subprocess.CalledProcessError as e:
            error_msg = f"Git command failed: git {' '.join(args)}"
            if e.stderr:
                error_msg += f"\nError: {e.stderr.strip()}"
            raise GitOperationError(
                error_msg, repository=str(self.working_dir), operation=operation
            ) from e

        except subprocess.TimeoutExpired as e:
            raise GitOperationError(
                f"Git command timed out after {timeout}s: git {' '.join(args)}",
                repository=str(self.working_dir),
                operation=operation,
            ) from e

        except FileNotFoundError as e:
            raise GitOperationError(
                "git executable not found", repository=str(self.working_dir), operation=operation
            ) from e

    def get_current_branch(self) -> str:
        """Name of the checked-out branch."""
        return self._run_git(["rev-parse", "--abbrev-ref", "HEAD"]).stdout.strip()

    def get_default_branch(self) -> str:
        """Default branch of the remote.

        Uses the remote's HEAD, then a local ``main`` or ``master``, then
        whatever is checked out.
        """
        result = self._run_git(["remote", "show", self.remote], check=False)
        if result.returncode == 0:
            match = re.search(r"HEAD branch:\s*(\S+)", result.stdout)
            if match and match.group(1) != "(unknown)":
                return match.group(1)

        for candidate in ("main", "master"):
            if self.branch_exists(candidate):
                return candidate

        return self.get_current_branch()

    def is_clean(self) -> bool:
        """Whether the working tree has no changes, untracked files included."""
        return self._run_git(["status", "--porcelain"]).stdout.strip() == ""

    def stash(self) -> bool:
        """Stash local changes including untracked files.

        Returns:
            True if something was stashed
        """
        if self.is_clean():
            return False
        self._run_git(["stash", "push", "--include-untracked", "-m", "autofix: auto-stash"])
        return True

    def unstash(self) -> None:
        """Pop the most recent stash."""
        self._run_git(["stash", "pop"])

    def create_branch(self, name: str, base: Optional[str] = None) -> None:
        """Create and check out a branch from the remote's copy of ``base``.

        Args:
            name: New branch name
            base: Base branch (defaults to the remote default branch)
        """
        base = base or self.get_default_branch()

        fetched = self._run_git(["fetch", self.remote, base], check=False)
        if fetched.returncode != 0:
            logger.warning(f"Fetch of {self.remote}/{base} failed: {fetched.stderr.strip()}")

        self._run_git(["checkout", "-b", name, f"{self.remote}/{base}"])
        logger.info(f"Created branch {name} from {self.remote}/{base}")

    def checkout(self, branch: str) -> None:
        """Check out an existing branch."""
        self._run_git(["checkout", branch])

    def discard_changes(self) -> None:
        """Throw away modifications to tracked files."""
        self._run_git(["checkout", "--", "."])

    def branch_exists(self, name: str) -> bool:
        """Whether a local branch with this name exists."""
        result = self._run_git(["rev-parse", "--verify", "--quiet", f"refs/heads/{name}"], check=False)
        return result.returncode == 0

    def add(self, files: List[str]) -> None:
        """Stage the given paths."""
        self._run_git(["add", "--", *files])

    def commit(self, message: str) -> None:
        """Commit staged changes as the configured author."""
        self._run_git(["config", "user.name", self.user_name])
        self._run_git(["config", "user.email", self.user_email])
        self._run_git(["commit", "-m", message])

    def push(self, branch: str) -> None:
        """Push a branch and set its upstream."""
        self._run_git(["push", "-u", self.remote, branch])

    def delete_branch(self, name: str) -> None:
        """Force-delete a local branch."""
        self._run_git(["branch", "-D", name])

    def get_remote_url(self) -> Optional[str]:
        """URL of the remote, if configured."""
        result = self._run_git(["remote", "get-url", self.remote], check=False)
        url = result.stdout.strip()
        return url if result.returncode == 0 and url else None

    def get_repo_info(self) -> Optional[Tuple[str, str]]:
        """Owner and name of the GitHub repository behind the remote.

        Returns:
            ``(owner, repo)``, or None if the remote is not on GitHub
        """
        url = self.get_remote_url()
        if not url:
            return None
        return parse_github_remote(url)


def parse_github_remote(url: str) -> Optional[Tuple[str, str]]:
    """Parse ``git@github.com:o/r.git`` or ``https://github.com/o/r.git``."""
    for pattern in (_SSH_REMOTE, _HTTPS_REMOTE):
        match = pattern.match(url.strip())
        if match:
            return match.group(1), match.group(2)
    return None
