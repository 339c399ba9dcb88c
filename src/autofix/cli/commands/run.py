"""Run command implementation."""

import logging

from autofix.core.agent import AutoFixAgent, RunResult
from autofix.core.config import AutoFixConfig
from autofix.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def run_cycle(config: AutoFixConfig) -> RunResult:
    """Run one poll cycle with collaborators built from the configuration.

    Args:
        config: Agent configuration

    Returns:
        Summary of the cycle

    Raises:
        ConfigurationError: If the configuration cannot support a run
    """
    problems = config.validate_for_run()
    if problems:
        raise ConfigurationError(
            "Configuration is incomplete", context={"problems": "; ".join(problems)}
        )

    logger.debug(f"Using state file {config.state_file}")
    return AutoFixAgent(config).run()
