"""Persistent state for the auto-fix agent.

One JSON document holds the watch list, every tracked error keyed by
fingerprint, the last poll time and the hourly pull request counter. The
agent is the only writer; each checkpoint rewrites the whole file atomically.
"""

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from autofix.exceptions import StateError

logger = logging.getLogger(__name__)

STATE_VERSION = "2.0"
CLEANUP_AGE = timedelta(days=7)
MAX_TRACKED_MESSAGE_LENGTH = 500


def utc_now() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def epoch_hour(moment: datetime) -> int:
    """Whole hours since the Unix epoch."""
    return int(moment.timestamp()) // 3600


class ErrorStatus(str, Enum):
    """Lifecycle of a tracked error."""

    NEW = "new"
    ANALYZING = "analyzing"
    FIXING = "fixing"
    PR_CREATED = "pr_created"
    IGNORED = "ignored"
    RESOLVED = "resolved"

    def __str__(self) -> str:
        return self.value


# Errors in these states are never picked up again by a poll cycle.
SKIP_STATUSES = frozenset(
    {
        ErrorStatus.PR_CREATED,
        ErrorStatus.IGNORED,
        ErrorStatus.RESOLVED,
        ErrorStatus.ANALYZING,
        ErrorStatus.FIXING,
    }
)

CLEANABLE_STATUSES = frozenset({ErrorStatus.RESOLVED, ErrorStatus.IGNORED})


class Watch(BaseModel):
    """A (project, environment, service) triple whose logs are polled."""

    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(..., alias="projectId")
    environment_id: str = Field(..., alias="environmentId")
    service_name: str = Field(..., alias="serviceName")
    enabled: bool = True

    @property
    def key(self) -> tuple:
        """Uniqueness key of the watch."""
        return (self.project_id, self.environment_id, self.service_name)


class TrackedError(BaseModel):
    """Everything remembered about one fingerprint."""

    model_config = ConfigDict(populate_by_name=True)

    first_seen: datetime = Field(..., alias="firstSeen")
    last_seen: datetime = Field(..., alias="lastSeen")
    occurrence_count: int = Field(default=1, alias="occurrenceCount")
    status: ErrorStatus = ErrorStatus.NEW
    pr_url: Optional[str] = Field(None, alias="prUrl")
    branch_name: Optional[str] = Field(None, alias="branchName")
    service_name: str = Field(..., alias="serviceName")
    message: str = ""

    @field_validator("first_seen", "last_seen")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)


class AutoFixState(BaseModel):
    """The whole persisted document."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = STATE_VERSION
    watches: List[Watch] = Field(default_factory=list)
    errors: Dict[str, TrackedError] = Field(default_factory=dict)
    last_poll_at: Optional[datetime] = Field(None, alias="lastPollAt")
    prs_created_this_hour: int = Field(default=0, alias="prsCreatedThisHour")
    last_pr_count_reset_hour: int = Field(default=0, alias="lastPRCountResetHour")

    @field_validator("last_poll_at")
    @classmethod
    def ensure_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("last_pr_count_reset_hour", mode="before")
    @classmethod
    def parse_legacy_hour(cls, v: Any) -> Any:
        """Accept the old ``YYYY-MM-DDTHH`` string bucket."""
        if v is None:
            return 0
        if isinstance(v, str):
            if not v:
                return 0
            try:
                return epoch_hour(datetime.strptime(v, "%Y-%m-%dT%H").replace(tzinfo=timezone.utc))
            except ValueError:
                logger.warning(f"Unrecognized PR counter hour {v!r}, resetting counter")
                return 0
        return v


class StateManager:
    """Owns the agent's state file.

    All mutating operations change the in-memory document only; callers
    flush with :meth:`save` at their checkpoints.
    """

    def __init__(
        self,
        state_file: Path,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the state manager.

        Args:
            state_file: Location of the JSON state file
            clock: Returns the current UTC time (defaults to the system clock)
        """
        self.state_file = Path(state_file)
        self._clock = clock or utc_now
        self._lock = Lock()
        self._state = self._load_state()

    @property
    def state(self) -> AutoFixState:
        """The live state document."""
        return self._state

    def _load_state(self) -> AutoFixState:
        """Load state from disk, falling back to defaults.

        A missing file yields a fresh state. An unreadable or corrupt file
        is backed up next to the original and replaced by a fresh state.
        """
        if not self.state_file.exists():
            logger.info("No existing state file found, initializing new state")
            return AutoFixState()

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("state file does not contain a JSON object")
            return AutoFixState.model_validate(data)

        except (OSError, ValueError, PydanticValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.error(f"Corrupted state file {self.state_file}: {e}")
            self._backup_corrupt_file()
            return AutoFixState()

    def _backup_corrupt_file(self) -> None:
        backup_path = self.state_file.with_suffix(".json.backup")
        try:
            self.state_file.replace(backup_path)
            logger.info(f"Corrupted state backed up to: {backup_path}")
        except OSError as e:
            logger.warning(f"Could not back up corrupted state file: {e}")

    def save(self) -> None:
        """Write the full state to disk atomically.

        Raises:
            StateError: If saving fails
        """
        with self._lock:
            temp_file = self.state_file.with_suffix(".tmp")
            try:
                self.state_file.parent.mkdir(parents=True, exist_ok=True)
                data = self._state.model_dump(mode="json", by_alias=True)

                with open(temp_file, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                    f.write("\n")
                    f.flush()
                    os.fsync(f.fileno())

                temp_file.replace(self.state_file)

            except OSError as e:
                logger.error(f"Failed to save state: {e}")
                raise StateError(f"State saving failed: {e}") from e

    # Watches

    def get_watches(self) -> List[Watch]:
        """All configured watches."""
        return list(self._state.watches)

    def get_enabled_watches(self) -> List[Watch]:
        """Watches that should be polled."""
        return [watch for watch in self._state.watches if watch.enabled]

    def add_watch(self, watch: Watch) -> None:
        """Add a watch, replacing any existing one with the same key."""
        self._state.watches = [w for w in self._state.watches if w.key != watch.key]
        self._state.watches.append(watch)
        logger.info(
            f"Watching {watch.service_name} in {watch.environment_id} "
            f"({'enabled' if watch.enabled else 'disabled'})"
        )

    def remove_watch(self, project_id: str, environment_id: str, service_name: str) -> bool:
        """Remove a watch.

        Returns:
            True if a watch was removed
        """
        key = (project_id, environment_id, service_name)
        before = len(self._state.watches)
        self._state.watches = [w for w in self._state.watches if w.key != key]
        return len(self._state.watches) < before

    # Tracked errors

    def get_error(self, fingerprint: str) -> Optional[TrackedError]:
        """Look up a tracked error by fingerprint."""
        return self._state.errors.get(fingerprint)

    def get_all_errors(self) -> Dict[str, TrackedError]:
        """All tracked errors keyed by fingerprint."""
        return dict(self._state.errors)

    def track_error(
        self,
        fingerprint: str,
        service_name: str,
        message: str,
        status: Optional[ErrorStatus] = None,
    ) -> TrackedError:
        """Record an occurrence of an error.

        Creates the entry on first sight, otherwise bumps the occurrence
        count and refreshes the other fields.

        Args:
            fingerprint: Error fingerprint
            service_name: Service the error came from
            message: Error message, truncated to 500 characters
            status: New status (defaults to ``new`` on creation, unchanged otherwise)

        Returns:
            The tracked entry
        """
        now = self._clock()
        message = message[:MAX_TRACKED_MESSAGE_LENGTH]
        existing = self._state.errors.get(fingerprint)

        if existing is None:
            tracked = TrackedError(
                first_seen=now,
                last_seen=now,
                occurrence_count=1,
                status=status or ErrorStatus.NEW,
                service_name=service_name,
                message=message,
            )
            self._state.errors[fingerprint] = tracked
            return tracked

        existing.last_seen = now
        existing.occurrence_count += 1
        existing.service_name = service_name
        existing.message = message
        if status is not None:
            existing.status = status
        return existing

    def update_error_status(
        self,
        fingerprint: str,
        status: ErrorStatus,
        pr_url: Optional[str] = None,
        branch_name: Optional[str] = None,
    ) -> None:
        """Change an error's status; unknown fingerprints are ignored."""
        tracked = self._state.errors.get(fingerprint)
        if tracked is None:
            logger.debug(f"Status update for unknown fingerprint {fingerprint}")
            return

        logger.info(f"Error {fingerprint}: {tracked.status} -> {status}")
        tracked.status = ErrorStatus(status)
        if pr_url is not None:
            tracked.pr_url = pr_url
        if branch_name is not None:
            tracked.branch_name = branch_name

    def list_errors(
        self, status: Optional[ErrorStatus] = None, limit: int = 20
    ) -> List[tuple]:
        """Tracked errors, most recently seen first.

        Returns:
            ``(fingerprint, TrackedError)`` pairs
        """
        items = [
            (fingerprint, tracked)
            for fingerprint, tracked in self._state.errors.items()
            if status is None or tracked.status == status
        ]
        items.sort(key=lambda item: item[1].last_seen, reverse=True)
        return items[:limit]

    # Polling

    def update_last_poll(self) -> None:
        """Record that a poll cycle just completed."""
        self._state.last_poll_at = self._clock()

    def get_last_poll_at(self) -> Optional[datetime]:
        """When the last poll cycle completed."""
        return self._state.last_poll_at

    # Rate limiting

    def _roll_pr_bucket(self) -> None:
        current = epoch_hour(self._clock())
        if self._state.last_pr_count_reset_hour != current:
            self._state.prs_created_this_hour = 0
            self._state.last_pr_count_reset_hour = current

    def can_create_pr(self, max_per_hour: int) -> bool:
        """Whether another pull request fits in the current clock hour."""
        self._roll_pr_bucket()
        return self._state.prs_created_this_hour < max_per_hour

    def increment_pr_count(self) -> None:
        """Count a pull request against the current clock hour."""
        self._roll_pr_bucket()
        self._state.prs_created_this_hour += 1

    def is_in_cooldown(self, fingerprint: str, cooldown_seconds: int) -> bool:
        """Whether a fixed error is still inside its quiet period."""
        tracked = self._state.errors.get(fingerprint)
        if tracked is None or tracked.status != ErrorStatus.PR_CREATED:
            return False
        return self._clock() < tracked.last_seen + timedelta(seconds=cooldown_seconds)

    # Housekeeping

    def cleanup(self) -> int:
        """Drop resolved and ignored errors not seen for a week.

        Returns:
            Number of entries removed
        """
        cutoff = self._clock() - CLEANUP_AGE
        stale = [
            fingerprint
            for fingerprint, tracked in self._state.errors.items()
            if tracked.status in CLEANABLE_STATUSES and tracked.last_seen < cutoff
        ]
        for fingerprint in stale:
            del self._state.errors[fingerprint]

        if stale:
            logger.info(f"Cleaned up {len(stale)} old error entries")
        return len(stale)

    def get_status_summary(self) -> Dict[str, Any]:
        """Counts for display.

        Returns:
            Watch counts, last poll time and error counts per status
        """
        by_status = {status.value: 0 for status in ErrorStatus}
        for tracked in self._state.errors.values():
            by_status[ErrorStatus(tracked.status).value] += 1

        return {
            "watches": len(self._state.watches),
            "enabled_watches": len(self.get_enabled_watches()),
            "last_poll_at": self._state.last_poll_at,
            "total_errors": len(self._state.errors),
            "errors_by_status": by_status,
            "prs_created_this_hour": self._state.prs_created_this_hour,
        }
