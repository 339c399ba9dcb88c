"""Tracked error commands."""

from typing import Any, Dict, List, Optional

from autofix.core.state_manager import ErrorStatus, StateManager
from autofix.exceptions import StateError

# Statuses an operator may set by hand.
MANUAL_STATUSES = (ErrorStatus.IGNORED, ErrorStatus.RESOLVED, ErrorStatus.NEW)


def list_errors(
    state: StateManager, status: Optional[str] = None, limit: int = 20
) -> List[Dict[str, Any]]:
    """Tracked errors, most recently seen first.

    Args:
        state: State store
        status: Only errors with this status
        limit: Maximum number of entries

    Returns:
        One dictionary per error
    """
    wanted = ErrorStatus(status) if status else None
    return [
        {
            "fingerprint": fingerprint,
            "status": str(tracked.status),
            "service": tracked.service_name,
            "occurrences": tracked.occurrence_count,
            "last_seen": tracked.last_seen.strftime("%Y-%m-%d %H:%M:%S"),
            "message": tracked.message,
            "pr_url": tracked.pr_url,
        }
        for fingerprint, tracked in state.list_errors(status=wanted, limit=limit)
    ]


def set_error_status(state: StateManager, fingerprint: str, status: ErrorStatus) -> None:
    """Manually move a tracked error to another status.

    Raises:
        StateError: If the fingerprint is unknown or the status is not manual
    """
    if status not in MANUAL_STATUSES:
        raise StateError(f"Status {status} cannot be set manually", requested_state=str(status))

    tracked = state.get_error(fingerprint)
    if tracked is None:
        raise StateError(
            f"No tracked error with fingerprint {fingerprint}", requested_state=str(status)
        )

    state.update_error_status(fingerprint, status)
    state.save()
