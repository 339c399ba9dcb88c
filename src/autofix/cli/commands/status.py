"""Status command implementation."""

from typing import Any, Dict

from autofix.core.config import AutoFixConfig
from autofix.core.state_manager import StateManager


def show_status(config: AutoFixConfig, state: StateManager) -> Dict[str, Any]:
    """Gather agent status.

    Args:
        config: Agent configuration
        state: State store

    Returns:
        Status information
    """
    summary = state.get_status_summary()
    last_poll = summary["last_poll_at"]

    return {
        "agent": {
            "working_directory": str(config.working_directory),
            "state_file": str(state.state_file),
            "analyzer": config.analyzer,
            "dry_run": config.dry_run,
            "max_prs_per_hour": config.max_prs_per_hour,
        },
        "watches": {
            "total": summary["watches"],
            "enabled": summary["enabled_watches"],
        },
        "last_poll_at": last_poll.isoformat() if last_poll else None,
        "prs_created_this_hour": summary["prs_created_this_hour"],
        "total_errors": summary["total_errors"],
        "errors_by_status": summary["errors_by_status"],
    }
