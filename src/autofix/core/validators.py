"""Static checks run against a patched working tree.

Checks are picked from what the repository declares: a ``tsconfig.json``
triggers a TypeScript type check, an ESLint config a lint run, and a mypy
configuration a mypy run over the changed Python files. Changed Python
files are always syntax-checked.
"""

import configparser
import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

CHECK_TIMEOUT = 60
SYNTAX_CHECK_TIMEOUT = 10
MAX_REPORTED_ERRORS = 5

ESLINT_CONFIGS = [".eslintrc", ".eslintrc.js", ".eslintrc.json", "eslint.config.js"]
MYPY_CONFIGS = ["mypy.ini", ".mypy.ini"]

_TS_ERROR = re.compile(r"error TS\d+")
_LINT_ERROR = re.compile(r"^\s*\d+:\d+\s+error\s")
_MYPY_ERROR = re.compile(r":\s*error:")
_JS_FILE = re.compile(r"\.(c|m)?js$")


@dataclass
class ValidationResult:
    """Outcome of the static checks."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def detect_package_manager(working_dir: Path) -> str:
    """Pick pnpm, yarn or npm from the lockfile present."""
    if (working_dir / "pnpm-lock.yaml").exists():
        return "pnpm"
    if (working_dir / "yarn.lock").exists():
        return "yarn"
    return "npm"


def has_mypy_config(working_dir: Path) -> bool:
    """Whether the repository configures mypy."""
    if any((working_dir / name).exists() for name in MYPY_CONFIGS):
        return True

    pyproject = working_dir / "pyproject.toml"
    if pyproject.exists() and "[tool.mypy]" in pyproject.read_text(encoding="utf-8"):
        return True

    setup_cfg = working_dir / "setup.cfg"
    if setup_cfg.exists():
        parser = configparser.ConfigParser()
        try:
            parser.read(setup_cfg, encoding="utf-8")
        except configparser.Error as e:
            logger.warning(f"Could not parse setup.cfg: {e}")
            return False
        return parser.has_section("mypy")

    return False


def _run_check(command: Sequence[str], working_dir: Path, timeout: int = CHECK_TIMEOUT):
    """Run a check command, returning None when the tool is unavailable."""
    try:
        return subprocess.run(
            list(command),
            cwd=working_dir,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        logger.warning(f"{command[0]} not found, skipping check")
        return None
    except subprocess.TimeoutExpired:
        logger.warning(f"{' '.join(command)} timed out after {timeout}s")
        return None


def _summarize(lines: List[str], kind: str) -> List[str]:
    reported = lines[:MAX_REPORTED_ERRORS]
    if len(lines) > MAX_REPORTED_ERRORS:
        reported.append(f"... and {len(lines) - MAX_REPORTED_ERRORS} more {kind} errors")
    return reported


def _typescript_errors(working_dir: Path, pm: str) -> List[str]:
    output = ""
    result = _run_check([pm, "run", "typecheck"], working_dir)
    if result is not None:
        output = result.stdout + result.stderr
    if result is None or result.returncode != 0:
        fallback = _run_check([pm, "exec", "tsc", "--noEmit"], working_dir)
        if fallback is not None:
            output += fallback.stdout + fallback.stderr

    type_errors = [line for line in output.splitlines() if _TS_ERROR.search(line)]
    return _summarize(type_errors, "type")


def _lint_warnings(working_dir: Path, pm: str) -> List[str]:
    result = _run_check([pm, "run", "lint"], working_dir)
    if result is None or result.returncode == 0:
        return []

    lint_errors = [
        line for line in (result.stdout + result.stderr).splitlines() if _LINT_ERROR.match(line)
    ]
    if lint_errors:
        return [f"{len(lint_errors)} lint errors found"]
    return []


def _mypy_errors(working_dir: Path, python_files: List[str]) -> List[str]:
    result = _run_check(["mypy", *python_files], working_dir)
    if result is None or result.returncode == 0:
        return []

    mypy_errors = [line for line in result.stdout.splitlines() if _MYPY_ERROR.search(line)]
    return _summarize(mypy_errors, "mypy")


def validate_fix(
    working_dir: Path, changed_files: Optional[Sequence[str]] = None
) -> ValidationResult:
    """Run every static check that applies to the repository.

    Args:
        working_dir: Repository root
        changed_files: Repository-relative paths touched by the fix

    Returns:
        Validation result; ``valid`` is False if any check reported errors
    """
    working_dir = Path(working_dir)
    changed_files = list(changed_files or [])
    errors: List[str] = []
    warnings: List[str] = []
    pm = detect_package_manager(working_dir)

    if (working_dir / "tsconfig.json").exists():
        errors.extend(_typescript_errors(working_dir, pm))

    if any((working_dir / name).exists() for name in ESLINT_CONFIGS):
        warnings.extend(_lint_warnings(working_dir, pm))

    python_files = [f for f in changed_files if f.endswith(".py")]
    if python_files:
        syntax = check_file_syntax(working_dir, python_files)
        errors.extend(syntax.errors)
        if syntax.valid and has_mypy_config(working_dir):
            errors.extend(_mypy_errors(working_dir, python_files))

    if errors:
        logger.warning(f"Validation found {len(errors)} problem(s)")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def check_file_syntax(working_dir: Path, files: Sequence[str]) -> ValidationResult:
    """Quick per-file syntax check.

    Python files are compiled in-process; JavaScript files go through
    ``node --check``.

    Args:
        working_dir: Repository root
        files: Repository-relative paths

    Returns:
        Validation result with one error per broken or missing file
    """
    working_dir = Path(working_dir)
    errors: List[str] = []

    for file in files:
        full_path = working_dir / file
        if not full_path.exists():
            errors.append(f"File not found: {file}")
            continue

        if file.endswith(".py"):
            try:
                compile(full_path.read_text(encoding="utf-8"), file, "exec")
            except SyntaxError as e:
                errors.append(f"Syntax error in {file}: line {e.lineno}: {e.msg}")
        elif _JS_FILE.search(file):
            result = _run_check(["node", "--check", str(full_path)], working_dir, SYNTAX_CHECK_TIMEOUT)
            if result is not None and result.returncode != 0:
                first_line = (result.stderr.strip().splitlines() or ["unknown error"])[0]
                errors.append(f"Syntax error in {file}: {first_line}")

    return ValidationResult(valid=not errors, errors=errors)
