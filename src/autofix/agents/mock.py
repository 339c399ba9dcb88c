"""Mock error analyzer for tests and rehearsal runs.

Returns canned verdicts without calling any external service, so a full
poll cycle can be exercised end to end.
"""

from typing import Dict, List, Optional

from autofix.agents.base import AnalysisResult, Confidence, ErrorAnalyzer
from autofix.core.fingerprint import NormalizedError, create_fingerprint
from autofix.exceptions import AgentError


class MockErrorAnalyzer(ErrorAnalyzer):
    """Analyzer that answers from a script.

    Results can be pinned per fingerprint; everything else gets the default
    result, which marks errors as not fixable.
    """

    def __init__(
        self,
        default_result: Optional[AnalysisResult] = None,
        results: Optional[Dict[str, AnalysisResult]] = None,
        simulate_failures: bool = False,
    ) -> None:
        """Initialize mock analyzer.

        Args:
            default_result: Verdict for errors without a pinned result
            results: Fingerprint -> pinned verdict
            simulate_failures: Raise AgentError on every call
        """
        self.default_result = default_result or AnalysisResult(
            can_fix=False,
            reason="Mock analyzer does not propose fixes",
            root_cause="Unknown",
            confidence=Confidence.LOW,
        )
        self.results = dict(results or {})
        self.simulate_failures = simulate_failures
        self.calls: List[NormalizedError] = []

    @property
    def name(self) -> str:
        """Analyzer name."""
        return "mock"

    def analyze(self, error: NormalizedError) -> AnalysisResult:
        """Return the scripted verdict for an error."""
        self.calls.append(error)

        if self.simulate_failures:
            raise AgentError("Simulated analyzer failure", agent_type=self.name, operation="analyze")

        return self.results.get(create_fingerprint(error), self.default_result)
