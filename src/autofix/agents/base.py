"""Error analyzer interface and the fix proposal models.

The analyzer decides whether an error is safe to fix automatically and, if
so, proposes literal search-anchored edits. Its output crosses a trust
boundary (it usually comes from an LLM), so every proposal is validated
here before the fix applier sees it.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from autofix.core.fingerprint import NormalizedError


class Confidence(str, Enum):
    """How sure the analyzer is about its diagnosis."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def __str__(self) -> str:
        return self.value


class EditType(str, Enum):
    """Kinds of literal edit."""

    REPLACE = "replace"
    INSERT = "insert"
    DELETE = "delete"

    def __str__(self) -> str:
        return self.value


class Edit(BaseModel):
    """One literal edit anchored on existing file content.

    ``replace`` swaps the first occurrence of ``search`` for ``replace``,
    ``insert`` adds ``content`` right after the first occurrence of
    ``after`` and ``delete`` removes the first occurrence of ``search``.
    """

    model_config = ConfigDict(frozen=True)

    type: EditType
    search: Optional[str] = None
    replace: Optional[str] = None
    after: Optional[str] = None
    content: Optional[str] = None

    @model_validator(mode="after")
    def check_anchor_fields(self) -> "Edit":
        """Reject edits that lack the fields their type needs."""
        if self.type in (EditType.REPLACE, EditType.DELETE) and not self.search:
            raise ValueError(f"{self.type} edit is missing search")
        if self.type == EditType.INSERT and (not self.after or self.content is None):
            raise ValueError("insert edit is missing after or content")
        return self


class FileChange(BaseModel):
    """Ordered edits for a single repository-relative file."""

    model_config = ConfigDict(frozen=True)

    path: str
    changes: List[Edit] = Field(default_factory=list)

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Keep edits inside the repository."""
        path = v.strip()
        if not path:
            raise ValueError("file path is empty")
        if path.startswith("/") or ".." in path.replace("\\", "/").split("/"):
            raise ValueError(f"file path must be relative to the repository: {v}")
        return path


class SuggestedFix(BaseModel):
    """A proposed fix spanning one or more files."""

    model_config = ConfigDict(frozen=True)

    description: str
    files: List[FileChange] = Field(default_factory=list)

    @field_validator("files")
    @classmethod
    def validate_files(cls, v: List[FileChange]) -> List[FileChange]:
        """A fix must touch at least one file."""
        if not v:
            raise ValueError("suggested fix changes no files")
        return v


class AnalysisResult(BaseModel):
    """The analyzer's verdict on one error."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    can_fix: bool = Field(..., alias="canFix")
    reason: str = "No reason provided"
    root_cause: str = Field(default="Unknown", alias="rootCause")
    suggested_fix: Optional[SuggestedFix] = Field(None, alias="suggestedFix")
    confidence: Confidence = Confidence.LOW
    test_suggestion: Optional[str] = Field(None, alias="testSuggestion")

    @field_validator("can_fix", mode="before")
    @classmethod
    def require_boolean(cls, v):
        """Only a real boolean counts as a fixability verdict."""
        if not isinstance(v, bool):
            raise ValueError("canFix must be a boolean")
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def default_confidence(cls, v):
        """Unknown confidence values degrade to low."""
        if isinstance(v, str) and v.lower() in {c.value for c in Confidence}:
            return v.lower()
        if isinstance(v, Confidence):
            return v
        return Confidence.LOW

    @model_validator(mode="after")
    def check_fix_present(self) -> "AnalysisResult":
        """A fixable verdict must come with a fix."""
        if self.can_fix and self.suggested_fix is None:
            raise ValueError("canFix is true but no suggestedFix was given")
        return self


class ErrorAnalyzer(ABC):
    """Decides fixability of production errors and proposes edits."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Analyzer name."""

    @abstractmethod
    def analyze(self, error: NormalizedError) -> AnalysisResult:
        """Classify an error and propose a fix.

        Args:
            error: The error to analyze

        Returns:
            Validated analysis result

        Raises:
            AgentError: If the analyzer fails or its answer is unusable
        """
