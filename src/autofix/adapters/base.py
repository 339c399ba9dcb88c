"""Abstract log watcher interface.

A log watcher fetches recent logs of one service from a hosting platform
and turns them into normalized errors. Each platform gets one watcher
implementation.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from autofix.core.fingerprint import NormalizedError

_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp from a platform API into aware UTC.

    Handles a trailing ``Z`` and fractional seconds finer than microseconds.
    """
    text = value.strip().replace("Z", "+00:00")
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class LogWatcher(ABC):
    """Fetches and normalizes error logs from one hosting platform."""

    @property
    @abstractmethod
    def provider(self) -> str:
        """Platform name."""

    @abstractmethod
    def can_handle(self, project_id: str) -> bool:
        """Whether this watcher knows how to reach the project's logs."""

    @abstractmethod
    def fetch_errors(
        self,
        environment_id: str,
        service_name: str,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[NormalizedError]:
        """Fetch errors logged by a service.

        Args:
            environment_id: Environment the service runs in
            service_name: Service to read logs from
            since: Only consider log lines newer than this
            limit: Maximum number of errors to return

        Returns:
            Normalized errors, oldest first

        Raises:
            PlatformError: If the platform cannot be reached
        """
