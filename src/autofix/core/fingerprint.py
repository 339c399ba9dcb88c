"""Error model and fingerprinting.

Raw log lines are grouped into incidents, each incident becomes a
``NormalizedError`` and every error is reduced to a 16 character
fingerprint. Two occurrences of the same bug share a fingerprint even
when their messages differ in ids, timestamps, ports or line numbers.
"""

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

ERROR_KEYWORDS = (
    "error",
    "exception",
    "failed",
    "crash",
    "fatal",
    "panic",
    "unhandled",
    "uncaught",
)

FINGERPRINT_LENGTH = 16
MAX_NORMALIZED_LENGTH = 200

_CONTINUATION_PATTERNS = (
    re.compile(r"^\s+at\s"),
    re.compile(r"^\s*\^"),
)

_STACK_FRAME_PATTERN = re.compile(r"^\s+at\s")

_ERROR_TYPE_PATTERNS = (
    re.compile(r"^(\w+Error):"),
    re.compile(r"^(\w+Exception):"),
    re.compile(r"^Error: (\w+):"),
    re.compile(r"^Uncaught (\w+Error)"),
    re.compile(r"^\[(\w+Error)\]"),
)

# Applied in order; UUIDs must be replaced before the generic hex-id rule.
_NORMALIZATION_RULES: Tuple[Tuple[re.Pattern, str], ...] = (
    (
        re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE),
        "<UUID>",
    ),
    (re.compile(r"\b[0-9a-f]{24,}\b", re.IGNORECASE), "<ID>"),
    (re.compile(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}[.\d]*Z?"), "<TIMESTAMP>"),
    (re.compile(r"\b\d{5,}\b"), "<NUM>"),
    (re.compile(r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}"), "<IP>"),
    (re.compile(r":\d+:\d+"), ":<LINE>"),
    (re.compile(r"\s+"), " "),
)


@dataclass(frozen=True)
class LogEntry:
    """A single raw log line as delivered by a platform."""

    timestamp: datetime
    message: str
    severity: Optional[str] = None


@dataclass
class ErrorGroup:
    """A run of consecutive log lines belonging to one incident."""

    timestamp: datetime
    lines: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class NormalizedError:
    """One detected incident, independent of the platform it came from."""

    timestamp: datetime
    message: str
    service_name: str
    environment_name: str
    project_id: str
    stack_trace: Optional[str] = None
    raw_lines: Tuple[str, ...] = ()
    error_type: Optional[str] = None

    @classmethod
    def from_group(
        cls,
        group: ErrorGroup,
        service_name: str,
        environment_name: str,
        project_id: str,
    ) -> "NormalizedError":
        """Build an error from a grouped run of log lines.

        The first line is the message; indented ``at`` lines that follow it
        form the stack trace.

        Args:
            group: Grouped log lines
            service_name: Service the logs came from
            environment_name: Human-readable environment name
            project_id: Platform project identifier

        Returns:
            Normalized error
        """
        lines = list(group.lines)
        message = lines[0] if lines else ""
        frames = [line for line in lines[1:] if _STACK_FRAME_PATTERN.match(line)]

        return cls(
            timestamp=group.timestamp,
            message=message,
            service_name=service_name,
            environment_name=environment_name,
            project_id=project_id,
            stack_trace="\n".join(frames) if frames else None,
            raw_lines=tuple(lines),
            error_type=extract_error_type(message),
        )


def is_error_log(message: str, severity: Optional[str] = None) -> bool:
    """Check whether a log line looks like an error.

    Args:
        message: Log line text
        severity: Severity reported by the platform, if any

    Returns:
        True for error-severity lines or lines containing an error keyword
    """
    if severity and severity.lower() == "error":
        return True

    lowered = message.lower()
    return any(keyword in lowered for keyword in ERROR_KEYWORDS)


def is_continuation_line(message: str) -> bool:
    """Check whether a line continues a previous error (stack frame or caret)."""
    return any(pattern.match(message) for pattern in _CONTINUATION_PATTERNS)


def group_consecutive_errors(logs: Iterable[LogEntry]) -> List[ErrorGroup]:
    """Group error lines and their continuation lines into incidents.

    An error line opens a group (or extends the open one), a continuation
    line extends the open group, and any other line closes it.

    Args:
        logs: Log entries in chronological order

    Returns:
        Error groups in the order they were opened
    """
    groups: List[ErrorGroup] = []
    current: Optional[ErrorGroup] = None

    for log in logs:
        if is_error_log(log.message, log.severity):
            if current is None:
                current = ErrorGroup(timestamp=log.timestamp)
                groups.append(current)
            current.lines.append(log.message)
        elif current is not None and is_continuation_line(log.message):
            current.lines.append(log.message)
        else:
            current = None

    return groups


def extract_error_type(message: str) -> Optional[str]:
    """Extract an error class name such as ``TypeError`` from a message.

    Args:
        message: First line of the error

    Returns:
        The error type, or None if no known pattern matches
    """
    for pattern in _ERROR_TYPE_PATTERNS:
        match = pattern.match(message)
        if match:
            return match.group(1)
    return None


def normalize_message(message: str) -> str:
    """Strip volatile substrings so repeated errors compare equal.

    Args:
        message: Raw error message

    Returns:
        Normalized message, at most 200 characters
    """
    normalized = message
    for pattern, replacement in _NORMALIZATION_RULES:
        normalized = pattern.sub(replacement, normalized)
    return normalized.strip()[:MAX_NORMALIZED_LENGTH]


def create_fingerprint(error: NormalizedError) -> str:
    """Compute the deduplication key for an error.

    The key hashes the error type, the first stack frame and the normalized
    message.

    Args:
        error: Error to fingerprint

    Returns:
        First 16 lowercase hex characters of the SHA-256 digest
    """
    error_type = error.error_type or extract_error_type(error.message) or "UnknownError"
    first_frame = error.stack_trace.split("\n")[0].strip() if error.stack_trace else ""
    key = f"{error_type}:{first_frame}:{normalize_message(error.message)}"

    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]
