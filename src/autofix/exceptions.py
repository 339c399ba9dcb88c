"""Custom exceptions for the auto-fix agent.

This module defines the exception hierarchy used throughout the agent so
that collaborator failures can be told apart from programming errors and
reported with useful context.
"""

from typing import Any, Dict, Optional


class AutoFixError(Exception):
    """Base exception class for all auto-fix errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "GENERAL_ERROR"
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (Code: {self.error_code}, Context: {context_str})"
        return f"{self.message} (Code: {self.error_code})"


class ConfigurationError(AutoFixError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_path: Optional[str] = None,
        setting: Optional[str] = None,
        **kwargs
    ) -> None:
        context = kwargs.pop("context", {})
        if config_path:
            context["config_path"] = config_path
        if setting:
            context["setting"] = setting

        super().__init__(message, error_code="CONFIGURATION_ERROR", context=context, **kwargs)
        self.config_path = config_path
        self.setting = setting


class PlatformError(AutoFixError):
    """Raised when a hosting or code-review platform call fails.

    Covers log retrieval from the deployment platform as well as the
    GitHub CLI used to open pull requests.
    """

    def __init__(
        self,
        message: str,
        platform: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ) -> None:
        context = kwargs.pop("context", {})
        if platform:
            context["platform"] = platform
        if status_code:
            context["status_code"] = status_code

        super().__init__(message, error_code="PLATFORM_ERROR", context=context, **kwargs)
        self.platform = platform
        self.status_code = status_code


class AgentError(AutoFixError):
    """Raised when the error analyzer fails or answers with garbage."""

    def __init__(
        self,
        message: str,
        agent_type: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ) -> None:
        context = kwargs.pop("context", {})
        if agent_type:
            context["agent_type"] = agent_type
        if operation:
            context["operation"] = operation

        super().__init__(message, error_code="AGENT_ERROR", context=context, **kwargs)
        self.agent_type = agent_type
        self.operation = operation


class GitOperationError(AutoFixError):
    """Raised when a git command fails."""

    def __init__(
        self,
        message: str,
        repository: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ) -> None:
        context = kwargs.pop("context", {})
        if repository:
            context["repository"] = repository
        if operation:
            context["operation"] = operation

        super().__init__(message, error_code="GIT_ERROR", context=context, **kwargs)
        self.repository = repository
        self.operation = operation


class FixApplicationError(AutoFixError):
    """Raised when a suggested edit cannot be applied to the working tree."""

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        **kwargs
    ) -> None:
        context = kwargs.pop("context", {})
        if file_path:
            context["file_path"] = file_path

        super().__init__(message, error_code="FIX_ERROR", context=context, **kwargs)
        self.file_path = file_path


class StateError(AutoFixError):
    """Raised when state persistence fails or a transition is invalid."""

    def __init__(
        self,
        message: str,
        current_state: Optional[str] = None,
        requested_state: Optional[str] = None,
        **kwargs
    ) -> None:
        context = kwargs.pop("context", {})
        if current_state:
            context["current_state"] = current_state
        if requested_state:
            context["requested_state"] = requested_state

        super().__init__(message, error_code="STATE_ERROR", context=context, **kwargs)
        self.current_state = current_state
        self.requested_state = requested_state
