"""Opens auto-fix pull requests with the GitHub CLI.

``gh`` handles authentication; when ``GITHUB_TOKEN`` is set it is passed
through as ``GH_TOKEN``. Arguments are passed as a list, so titles and
bodies never go through a shell.
"""

import json
import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from autofix.adapters.github.templates import generate_pr_body, generate_pr_title
from autofix.agents.base import AnalysisResult
from autofix.core.code_fixer import FixResult
from autofix.core.fingerprint import NormalizedError, create_fingerprint
from autofix.exceptions import PlatformError

logger = logging.getLogger(__name__)

GH_TIMEOUT = 30
PR_LABELS = "auto-fix,production-error"

_PR_NUMBER = re.compile(r"/pull/(\d+)")


@dataclass
class PRResult:
    """Outcome of opening a pull request."""

    success: bool
    pr_url: Optional[str] = None
    pr_number: Optional[int] = None
    error: Optional[str] = None


class PRCreator:
    """Creates GitHub pull requests for pushed fix branches."""

    def __init__(self, working_dir: Path) -> None:
        """Initialize PR creator.

        Args:
            working_dir: Repository root the ``gh`` commands run in
        """
        self.working_dir = Path(working_dir)

    @property
    def name(self) -> str:
        """Platform name."""
        return "github"

    def _gh_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        token = env.get("GITHUB_TOKEN") or env.get("GH_TOKEN")
        if token:
            env["GH_TOKEN"] = token
        return env

    def _run_gh_command(
        self, args: List[str], check: bool = True, timeout: int = GH_TIMEOUT
    ) -> subprocess.CompletedProcess:
        """Run a gh CLI command.

        Args:
            args: Command arguments (without 'gh' prefix)
            check: Whether to raise on non-zero exit code
            timeout: Command timeout in seconds

        Returns:
            Completed process result

        Raises:
            PlatformError: If command fails and check=True
        """
        try:
            return subprocess.run(
                ["gh"] + args,
                cwd=self.working_dir,
                env=self._gh_env(),
                capture_output=True,
                text=True,
                check=check,
                timeout=timeout,
            )

        except subprocess.CalledProcessError as e:
            error_msg = f"GitHub CLI command failed: gh {' '.join(args[:3])}"
            if e.stderr:
                error_msg += f"\nError: {e.stderr.strip()}"
            raise PlatformError(error_msg, platform=self.name, status_code=e.returncode) from e

        except subprocess.TimeoutExpired as e:
            raise PlatformError(
                f"GitHub CLI command timed out after {timeout}s: gh {' '.join(args[:3])}",
                platform=self.name,
            ) from e

        except FileNotFoundError as e:
            raise PlatformError(
                "GitHub CLI (gh) not found. Install from: https://cli.github.com/",
                platform=self.name,
            ) from e

    def validate_connection(self) -> None:
        """Make sure ``gh`` is installed and authenticated.

        Raises:
            PlatformError: If it is not
        """
        result = self._run_gh_command(["auth", "status"], check=False)
        if result.returncode != 0:
            raise PlatformError(
                'GitHub CLI (gh) is not authenticated. Run "gh auth login" or set GITHUB_TOKEN.',
                platform=self.name,
            )

    def create_pr(
        self,
        branch_name: str,
        error: NormalizedError,
        analysis: AnalysisResult,
        fix: FixResult,
    ) -> PRResult:
        """Open a pull request for a pushed fix branch.

        Args:
            branch_name: Branch holding the fix
            error: The production error
            analysis: Analyzer verdict
            fix: Result of applying the fix

        Returns:
            PR result; failures are reported, not raised
        """
        fingerprint = create_fingerprint(error)

        try:
            self.validate_connection()

            title = generate_pr_title(error, analysis)
            body = generate_pr_body(error, analysis, fix.files_changed, fingerprint)

            result = self._run_gh_command(
                ["pr", "create", "--head", branch_name, "--title", title, "--body", body]
            )

        except PlatformError as e:
            logger.error(f"Failed to create PR for {branch_name}: {e.message}")
            return PRResult(success=False, error=e.message)

        pr_url = result.stdout.strip().splitlines()[-1] if result.stdout.strip() else ""
        match = _PR_NUMBER.search(pr_url)
        pr_number = int(match.group(1)) if match else None

        if pr_number is not None:
            self._add_labels(pr_number)

        logger.info(f"Created PR {pr_url}")
        return PRResult(success=True, pr_url=pr_url or None, pr_number=pr_number)

    def _add_labels(self, pr_number: int) -> None:
        """Label a PR; the labels may not exist in every repository."""
        try:
            result = self._run_gh_command(
                ["pr", "edit", str(pr_number), "--add-label", PR_LABELS], check=False
            )
        except PlatformError as e:
            logger.warning(f"Could not label PR #{pr_number}: {e.message}")
            return
        if result.returncode != 0:
            logger.debug(f"Could not label PR #{pr_number}: {result.stderr.strip()}")

    def pr_exists(self, branch_name: str) -> bool:
        """Whether an open PR already uses this branch."""
        result = self._run_gh_command(
            ["pr", "list", "--head", branch_name, "--json", "number"], check=False
        )
        if result.returncode != 0:
            return False
        try:
            return len(json.loads(result.stdout or "[]")) > 0
        except json.JSONDecodeError:
            logger.warning(f"Unexpected gh pr list output: {result.stdout[:100]}")
            return False

    def get_pr_url(self, branch_name: str) -> Optional[str]:
        """URL of the PR for a branch, if there is one."""
        result = self._run_gh_command(
            ["pr", "view", branch_name, "--json", "url", "-q", ".url"], check=False
        )
        url = result.stdout.strip()
        return url if result.returncode == 0 and url else None

    def add_comment(self, pr_number: int, body: str) -> None:
        """Comment on a PR.

        Raises:
            PlatformError: If the comment cannot be posted
        """
        self._run_gh_command(["pr", "comment", str(pr_number), "--body", body])
