"""Watch management commands."""

from typing import Any, Dict, List

from autofix.core.state_manager import StateManager, Watch


def add_watch(
    state: StateManager, project_id: str, environment_id: str, service_name: str, enabled: bool
) -> Watch:
    """Add or update a watch and persist it."""
    watch = Watch(
        project_id=project_id,
        environment_id=environment_id,
        service_name=service_name,
        enabled=enabled,
    )
    state.add_watch(watch)
    state.save()
    return watch


def remove_watch(
    state: StateManager, project_id: str, environment_id: str, service_name: str
) -> bool:
    """Remove a watch and persist the change.

    Returns:
        True if the watch existed
    """
    removed = state.remove_watch(project_id, environment_id, service_name)
    if removed:
        state.save()
    return removed


def list_watches(state: StateManager) -> List[Dict[str, Any]]:
    """Watches as plain dictionaries for display."""
    return [watch.model_dump() for watch in state.get_watches()]
