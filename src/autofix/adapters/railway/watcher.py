"""Railway log watcher.

Reads deployment logs through Railway's public GraphQL API. Watched
environments are mapped onto Railway projects, environments and services
by the ``environments`` bindings in the agent configuration.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from autofix.adapters.base import LogWatcher, parse_timestamp
from autofix.core.config import AutoFixConfig, EnvironmentBinding
from autofix.core.fingerprint import (
    LogEntry,
    NormalizedError,
    group_consecutive_errors,
)
from autofix.exceptions import ConfigurationError, PlatformError

logger = logging.getLogger(__name__)

RAILWAY_API_URL = "https://backboard.railway.app/graphql/v2"
REQUEST_TIMEOUT = 30.0
DEFAULT_ERROR_LIMIT = 10
DEFAULT_LOG_LIMIT = 500
LOG_LINES_PER_ERROR = 10

DEPLOYMENTS_QUERY = """
query GetDeployments($projectId: String!, $environmentId: String!, $serviceId: String, $first: Int) {
  deployments(
    input: {projectId: $projectId, environmentId: $environmentId, serviceId: $serviceId}
    first: $first
  ) {
    edges {
      node {
        id
        status
        createdAt
      }
    }
  }
}
"""

LOGS_QUERY = """
query GetLogs($deploymentId: String!, $limit: Int) {
  deploymentLogs(deploymentId: $deploymentId, limit: $limit) {
    timestamp
    message
    severity
  }
}
"""


class RailwayLogWatcher(LogWatcher):
    """Log watcher for services deployed on Railway."""

    def __init__(
        self,
        api_token: str,
        environments: Dict[str, EnvironmentBinding],
        client: Optional[httpx.Client] = None,
        api_url: str = RAILWAY_API_URL,
    ) -> None:
        """Initialize the watcher.

        Args:
            api_token: Railway API token
            environments: Environment id -> Railway binding
            client: HTTP client (a new one is created if omitted)
            api_url: GraphQL endpoint
        """
        self.environments = environments
        self.api_url = api_url
        self.client = client or httpx.Client(timeout=REQUEST_TIMEOUT)
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }

    @classmethod
    def from_config(cls, config: AutoFixConfig) -> "RailwayLogWatcher":
        """Build a watcher from the agent configuration.

        Raises:
            ConfigurationError: If no Railway API token is configured
        """
        if not config.railway_api_token:
            raise ConfigurationError(
                "RAILWAY_API_TOKEN is required to watch Railway logs", setting="railway_api_token"
            )
        return cls(config.railway_api_token, config.environments)

    @property
    def provider(self) -> str:
        """Platform name."""
        return "railway"

    def can_handle(self, project_id: str) -> bool:
        """Whether any environment of the project is bound to Railway."""
        return any(
            binding.project_id == project_id and binding.railway_project_id
            for binding in self.environments.values()
        )

    def _graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Run a GraphQL request.

        Raises:
            PlatformError: On transport errors, HTTP errors or GraphQL errors
        """
        try:
            response = self.client.post(
                self.api_url,
                json={"query": query, "variables": variables},
                headers=self._headers,
            )
            response.raise_for_status()
            payload = response.json()

        except httpx.HTTPStatusError as e:
            raise PlatformError(
                f"Railway API request failed: {e.response.status_code}",
                platform=self.provider,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise PlatformError(f"Railway API unreachable: {e}", platform=self.provider) from e
        except ValueError as e:
            raise PlatformError(f"Railway API returned invalid JSON: {e}", platform=self.provider) from e

        if not isinstance(payload, dict):
            raise PlatformError(
                f"Railway API returned an unexpected body: {type(payload).__name__}",
                platform=self.provider,
            )

        if payload.get("errors"):
            messages = "; ".join(err.get("message", "unknown error") for err in payload["errors"])
            raise PlatformError(f"Railway API error: {messages}", platform=self.provider)

        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise PlatformError("Railway API returned malformed data", platform=self.provider)
        return data

    def get_latest_deployment_id(
        self, railway_project_id: str, railway_environment_id: str, service_id: str
    ) -> Optional[str]:
        """Id of the most recent deployment of a service, if any."""
        data = self._graphql(
            DEPLOYMENTS_QUERY,
            {
                "projectId": railway_project_id,
                "environmentId": railway_environment_id,
                "serviceId": service_id,
                "first": 1,
            },
        )
        try:
            edges = (data.get("deployments") or {}).get("edges") or []
            return edges[0]["node"]["id"] if edges else None
        except (AttributeError, KeyError, TypeError) as e:
            raise PlatformError(
                f"Railway API returned a malformed deployment: {e!r}", platform=self.provider
            ) from e

    def get_deployment_logs(self, deployment_id: str, limit: int) -> List[LogEntry]:
        """Raw log lines of a deployment."""
        data = self._graphql(LOGS_QUERY, {"deploymentId": deployment_id, "limit": limit})

        entries = []
        for raw in data.get("deploymentLogs") or []:
            try:
                timestamp = parse_timestamp(raw["timestamp"])
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Skipping log line with bad timestamp: {raw!r}")
                continue
            entries.append(
                LogEntry(
                    timestamp=timestamp,
                    message=raw.get("message") or "",
                    severity=raw.get("severity"),
                )
            )
        return entries

    def fetch_errors(
        self,
        environment_id: str,
        service_name: str,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[NormalizedError]:
        """Fetch errors from the latest deployment of a service."""
        binding = self.environments.get(environment_id)
        if binding is None:
            logger.warning(f"Environment not found: {environment_id}")
            return []

        service_id = binding.services.get(service_name)
        if not service_id:
            logger.warning(f"Service {service_name} not found in Railway bindings")
            return []

        deployment_id = self.get_latest_deployment_id(
            binding.railway_project_id, binding.railway_environment_id, service_id
        )
        if deployment_id is None:
            logger.info(f"No deployments found for {service_name}")
            return []

        log_limit = limit * LOG_LINES_PER_ERROR if limit else DEFAULT_LOG_LIMIT
        logs = self.get_deployment_logs(deployment_id, log_limit)
        if since is not None:
            logs = [log for log in logs if log.timestamp > since]

        errors = [
            NormalizedError.from_group(
                group,
                service_name=service_name,
                environment_name=binding.name,
                project_id=binding.project_id,
            )
            for group in group_consecutive_errors(logs)
        ]

        logger.debug(f"{service_name}: {len(logs)} log lines, {len(errors)} error(s)")
        return errors[: limit or DEFAULT_ERROR_LIMIT]

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()
