"""Auto-Fix Agent - Automated production error remediation.

Polls deployment logs, deduplicates recurring errors, asks an LLM whether
they can be fixed safely and delivers each fix as a reviewable pull request.
"""

__version__ = "0.1.0"
__author__ = "Auto-Fix Contributors"
__license__ = "MIT"

from autofix.exceptions import AutoFixError

__all__ = [
    "__version__",
    "AutoFixError",
]
