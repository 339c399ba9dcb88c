"""The poll cycle that ties the pipeline together.

One call to :meth:`AutoFixAgent.run` polls every enabled watch once,
deduplicates what it finds and takes each new error through analysis, fix
application and pull request creation, strictly one error at a time.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from autofix.adapters.base import LogWatcher
from autofix.adapters.git.basic import GitOps
from autofix.adapters.github.client import PRCreator
from autofix.adapters.github.templates import generate_commit_message
from autofix.adapters.railway.watcher import RailwayLogWatcher
from autofix.agents.base import ErrorAnalyzer
from autofix.agents.claude import ClaudeErrorAnalyzer
from autofix.agents.mock import MockErrorAnalyzer
from autofix.core.code_fixer import CodeFixer
from autofix.core.config import AutoFixConfig
from autofix.core.fingerprint import NormalizedError, create_fingerprint
from autofix.core.state_manager import SKIP_STATUSES, ErrorStatus, StateManager, Watch
from autofix.exceptions import AutoFixError

logger = logging.getLogger(__name__)

WatcherFactory = Callable[[str], Optional[LogWatcher]]


@dataclass
class RunResult:
    """Summary of one poll cycle."""

    errors_found: int = 0
    errors_analyzed: int = 0
    fixes_attempted: int = 0
    prs_created: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        """Whether any error failed to process."""
        return bool(self.errors)

    def record_failure(self, fingerprint: str, message: str) -> None:
        """Remember a per-error failure."""
        self.errors.append({"fingerprint": fingerprint, "error": message})


def create_analyzer(config: AutoFixConfig) -> ErrorAnalyzer:
    """Build the analyzer selected by the configuration."""
    if config.analyzer == "mock":
        return MockErrorAnalyzer()
    return ClaudeErrorAnalyzer(
        api_key=config.anthropic_api_key,
        model=config.claude_model,
        working_dir=config.working_directory,
    )


def railway_watcher_factory(config: AutoFixConfig) -> WatcherFactory:
    """Factory that hands out the Railway watcher for bound projects."""
    shared: Dict[str, RailwayLogWatcher] = {}

    def factory(project_id: str) -> Optional[LogWatcher]:
        if not config.railway_api_token:
            logger.warning("RAILWAY_API_TOKEN is not set, cannot read Railway logs")
            return None
        if "watcher" not in shared:
            shared["watcher"] = RailwayLogWatcher.from_config(config)
        watcher = shared["watcher"]
        return watcher if watcher.can_handle(project_id) else None

    return factory


class AutoFixAgent:
    """Coordinates log watching, analysis, fixing and pull requests."""

    def __init__(
        self,
        config: AutoFixConfig,
        state: Optional[StateManager] = None,
        analyzer: Optional[ErrorAnalyzer] = None,
        fixer: Optional[CodeFixer] = None,
        pr_creator: Optional[PRCreator] = None,
        watcher_factory: Optional[WatcherFactory] = None,
    ) -> None:
        """Initialize the agent.

        Collaborators not given are built from the configuration.

        Args:
            config: Agent configuration
            state: State store
            analyzer: Error analyzer
            fixer: Fix applier
            pr_creator: Pull request creator
            watcher_factory: Returns the log watcher for a project id, or None
        """
        self.config = config
        self.state = state or StateManager(config.state_file)
        self.analyzer = analyzer or create_analyzer(config)
        self.fixer = fixer or CodeFixer(
            config.working_directory,
            git=GitOps(
                config.working_directory,
                user_name=config.git_user_name,
                user_email=config.git_user_email,
            ),
        )
        self.pr_creator = pr_creator or PRCreator(config.working_directory)
        self.watcher_factory = watcher_factory or railway_watcher_factory(config)
        self._watchers: Dict[str, LogWatcher] = {}

    def run(self) -> RunResult:
        """Run a single poll cycle.

        Returns:
            Summary of the cycle

        Raises:
            Exception: Anything that breaks the cycle as a whole, after the
                state has been saved
        """
        result = RunResult()
        logger.info("Auto-fix agent starting" + (" (dry run)" if self.config.dry_run else ""))

        try:
            watches = self.state.get_enabled_watches()
            if not watches:
                logger.info("No enabled watches configured")
                return result

            logger.info(f"Processing {len(watches)} watch(es)")
            all_errors = self._poll_watches(watches, result)
            result.errors_found = len(all_errors)

            new_errors = self.filter_new_errors(all_errors)
            logger.info(f"{len(new_errors)} new/actionable error(s) after filtering")

            for error in new_errors:
                if not self.state.can_create_pr(self.config.max_prs_per_hour):
                    logger.info("PR rate limit reached, stopping for this run")
                    break
                self._process_error(error, result)

            self.state.update_last_poll()
            self.state.cleanup()
            self.state.save()

        except Exception:
            logger.exception("Agent run failed")
            self.state.save()
            raise

        logger.info(
            f"Run complete: {result.errors_found} found, {result.errors_analyzed} analyzed, "
            f"{result.prs_created} PR(s) created"
        )
        return result

    def _get_watcher(self, project_id: str) -> Optional[LogWatcher]:
        """Watcher for a project, cached after the first lookup."""
        if project_id not in self._watchers:
            watcher = self.watcher_factory(project_id)
            if watcher is not None:
                self._watchers[project_id] = watcher
        return self._watchers.get(project_id)

    def _poll_watches(self, watches: List[Watch], result: RunResult) -> List[NormalizedError]:
        all_errors: List[NormalizedError] = []
        since = self.state.get_last_poll_at()

        for watch in watches:
            watcher = self._get_watcher(watch.project_id)
            if watcher is None:
                logger.warning(f"No watcher available for project {watch.project_id}")
                continue

            try:
                errors = watcher.fetch_errors(
                    watch.environment_id,
                    watch.service_name,
                    since=since,
                    limit=self.config.max_errors_per_poll,
                )
            except AutoFixError as e:
                key = f"watch:{watch.project_id}/{watch.environment_id}/{watch.service_name}"
                logger.error(f"Failed to fetch logs for {watch.service_name}: {e.message}")
                result.record_failure(key, e.message)
                continue

            logger.info(f"Found {len(errors)} error(s) in {watch.service_name}")
            all_errors.extend(errors)

        return all_errors

    def filter_new_errors(self, errors: List[NormalizedError]) -> List[NormalizedError]:
        """Keep the first occurrence of each fingerprint not already handled."""
        seen = set()
        actionable = []

        for error in errors:
            fingerprint = create_fingerprint(error)
            if fingerprint in seen:
                continue
            seen.add(fingerprint)

            tracked = self.state.get_error(fingerprint)
            if tracked is not None and tracked.status in SKIP_STATUSES:
                continue

            actionable.append(error)

        return actionable

    def _process_error(self, error: NormalizedError, result: RunResult) -> None:
        """Take one error through analysis, fixing and PR creation."""
        fingerprint = create_fingerprint(error)
        if self.state.is_in_cooldown(fingerprint, self.config.cooldown_seconds):
            logger.info(f"Error {fingerprint} is in cooldown, skipping")
            return

        try:
            self.state.track_error(
                fingerprint, error.service_name, error.message, status=ErrorStatus.ANALYZING
            )
            self.state.save()

            logger.info(f"Analyzing error {fingerprint}: {error.message[:100]}")
            analysis = self.analyzer.analyze(error)
            result.errors_analyzed += 1

            if not analysis.can_fix:
                logger.info(f"Error cannot be auto-fixed: {analysis.reason}")
                self.state.update_error_status(fingerprint, ErrorStatus.IGNORED)
                return

            self.state.update_error_status(fingerprint, ErrorStatus.FIXING)
            self.state.save()

            if self.config.dry_run:
                logger.info(
                    f"[DRY RUN] Would apply fix for {fingerprint}: "
                    f"{analysis.suggested_fix.model_dump_json(indent=2)}"
                )
                result.fixes_attempted += 1
                # Leave the error eligible for a real run.
                self.state.update_error_status(fingerprint, ErrorStatus.NEW)
                return

            fix = self.fixer.apply_fix(
                analysis.suggested_fix,
                fingerprint,
                commit_message=generate_commit_message(error, analysis, fingerprint),
            )
            result.fixes_attempted += 1

            if not fix.success:
                details = "; ".join(fix.validation_errors)
                message = f"{fix.error}: {details}" if details else str(fix.error)
                logger.error(f"Failed to apply fix for {fingerprint}: {message}")
                result.record_failure(fingerprint, message)
                self.state.update_error_status(fingerprint, ErrorStatus.NEW)
                return

            pr = self.pr_creator.create_pr(fix.branch_name, error, analysis, fix)
            if not pr.success:
                logger.error(f"Failed to create PR for {fingerprint}: {pr.error}")
                result.record_failure(fingerprint, f"PR creation failed: {pr.error}")
                self.state.update_error_status(fingerprint, ErrorStatus.NEW)
                return

            logger.info(f"PR created: {pr.pr_url}")
            result.prs_created += 1
            self.state.increment_pr_count()
            self.state.update_error_status(
                fingerprint, ErrorStatus.PR_CREATED, pr_url=pr.pr_url, branch_name=fix.branch_name
            )

        except Exception as e:
            message = e.message if isinstance(e, AutoFixError) else str(e)
            logger.error(f"Error processing {fingerprint}: {message}")
            result.record_failure(fingerprint, message)
            self.state.update_error_status(fingerprint, ErrorStatus.NEW)

        finally:
            self.state.save()
