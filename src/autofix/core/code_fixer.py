"""Applies suggested fixes on an isolated branch.

Applying a fix is a saga: every step that touches the repository has a
compensating action, and any failure unwinds the steps already taken so
the working tree ends up exactly where it started.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from autofix.adapters.git.basic import GitOps
from autofix.agents.base import Edit, EditType, FileChange, SuggestedFix
from autofix.core.validators import ValidationResult, validate_fix
from autofix.exceptions import AutoFixError, FixApplicationError, GitOperationError

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "autofix/err-"
ANCHOR_PREVIEW_LENGTH = 50


def branch_name_for(fingerprint: str) -> str:
    """Deterministic fix branch for a fingerprint."""
    return f"{BRANCH_PREFIX}{fingerprint}"


def default_commit_message(fix: SuggestedFix, fingerprint: str) -> str:
    """Commit message used when the caller does not supply one."""
    return (
        f"fix: {fix.description}\n\n"
        "Auto-generated fix for production error.\n"
        f"Fingerprint: {fingerprint}"
    )


@dataclass
class FixResult:
    """Outcome of applying a fix."""

    success: bool
    branch_name: Optional[str] = None
    files_changed: List[str] = field(default_factory=list)
    error: Optional[str] = None
    validation_errors: List[str] = field(default_factory=list)


def _preview(anchor: str) -> str:
    return f'"{anchor[:ANCHOR_PREVIEW_LENGTH]}..."'


def apply_edits(content: str, edits: Sequence[Edit], path: str) -> str:
    """Apply literal edits to file content, first occurrence only.

    Args:
        content: Current file content
        edits: Edits in the order they must be applied
        path: File path, used in error messages

    Returns:
        The edited content

    Raises:
        FixApplicationError: If an anchor is missing
    """
    for edit in edits:
        if edit.type == EditType.REPLACE:
            if edit.search not in content:
                raise FixApplicationError(
                    f"Search string not found in {path}: {_preview(edit.search)}", file_path=path
                )
            content = content.replace(edit.search, edit.replace or "", 1)

        elif edit.type == EditType.INSERT:
            if edit.after not in content:
                raise FixApplicationError(
                    f"Insert anchor not found in {path}: {_preview(edit.after)}", file_path=path
                )
            content = content.replace(edit.after, edit.after + edit.content, 1)

        elif edit.type == EditType.DELETE:
            if edit.search not in content:
                raise FixApplicationError(
                    f"Delete target not found in {path}: {_preview(edit.search)}", file_path=path
                )
            content = content.replace(edit.search, "", 1)

    return content


class CodeFixer:
    """Turns a suggested fix into a pushed branch."""

    def __init__(
        self,
        working_dir: Path,
        git: Optional[GitOps] = None,
        validator: Callable[[Path, Sequence[str]], ValidationResult] = validate_fix,
    ) -> None:
        """Initialize the fixer.

        Args:
            working_dir: Repository root
            git: Git primitives (defaults to a GitOps on ``working_dir``)
            validator: Static check run after edits are applied
        """
        self.working_dir = Path(working_dir)
        self.git = git or GitOps(self.working_dir)
        self.validator = validator

    def apply_fix(
        self,
        fix: SuggestedFix,
        fingerprint: str,
        commit_message: Optional[str] = None,
    ) -> FixResult:
        """Apply, validate, commit and push a fix on its own branch.

        On success the original branch is checked out again and any stashed
        work restored. On failure every completed step is undone.

        Args:
            fix: Validated fix proposal
            fingerprint: Fingerprint of the error being fixed
            commit_message: Commit message (defaults to a generic one)

        Returns:
            Fix result; never raises for repository or edit problems
        """
        branch_name = branch_name_for(fingerprint)

        try:
            if self.git.branch_exists(branch_name):
                return FixResult(success=False, error=f"Branch {branch_name} already exists")
            original_branch = self.git.get_current_branch()
        except GitOperationError as e:
            return FixResult(success=False, error=str(e.message))

        stashed = False
        branch_created = False

        try:
            stashed = self.git.stash()

            self.git.create_branch(branch_name)
            branch_created = True

            files_changed = []
            for file_change in fix.files:
                self._apply_file_change(file_change)
                files_changed.append(file_change.path)

            validation = self.validator(self.working_dir, files_changed)
            if not validation.valid:
                self._rollback(original_branch, branch_name, branch_created, stashed)
                return FixResult(
                    success=False,
                    error="Validation failed",
                    validation_errors=list(validation.errors),
                )
            for warning in validation.warnings:
                logger.warning(f"Validation warning: {warning}")

            self.git.add(files_changed)
            self.git.commit(commit_message or default_commit_message(fix, fingerprint))
            self.git.push(branch_name)

            self.git.checkout(original_branch)
            if stashed:
                self.git.unstash()

            logger.info(f"Pushed fix branch {branch_name} ({len(files_changed)} file(s))")
            return FixResult(success=True, branch_name=branch_name, files_changed=files_changed)

        except Exception as e:
            message = e.message if isinstance(e, AutoFixError) else str(e)
            logger.error(f"Applying fix for {fingerprint} failed: {message}")
            self._rollback(original_branch, branch_name, branch_created, stashed)
            return FixResult(success=False, error=message)

    def _apply_file_change(self, file_change: FileChange) -> None:
        """Edit one file; it is written only if every edit applies."""
        file_path = self.working_dir / file_change.path
        if not file_path.is_file():
            raise FixApplicationError(
                f"File not found: {file_change.path}", file_path=file_change.path
            )

        try:
            content = file_path.read_text(encoding="utf-8")
            updated = apply_edits(content, file_change.changes, file_change.path)
            file_path.write_text(updated, encoding="utf-8")
        except (OSError, UnicodeError) as e:
            raise FixApplicationError(
                f"Failed to modify {file_change.path}: {e}", file_path=file_change.path
            ) from e

    def _rollback(
        self, original_branch: str, branch_name: str, branch_created: bool, stashed: bool
    ) -> None:
        """Undo whatever the saga did; rollback problems are only logged."""
        steps = []
        if branch_created:
            steps.append(("discard edits", self.git.discard_changes))
        steps.append(("checkout original branch", lambda: self.git.checkout(original_branch)))
        if branch_created:
            steps.append(("delete fix branch", lambda: self.git.delete_branch(branch_name)))
        if stashed:
            steps.append(("restore stash", self.git.unstash))

        for description, step in steps:
            try:
                step()
            except GitOperationError as e:
                logger.warning(f"Rollback step '{description}' failed: {e.message}")
