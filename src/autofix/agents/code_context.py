"""Collects the source files an error points at.

File paths are pulled out of the stack trace (or the message when there is
no trace), mapped back onto the repository and read, so the analyzer sees
the code it is asked to fix.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

MAX_CONTEXT_FILES = 5
MAX_FILE_CHARS = 10000
TRUNCATION_NOTE = "\n... (truncated)"

_PATH_PATTERNS = (
    # Node: at fn (/abs/file.js:1:2), at fn (./rel/file.js:1:2)
    re.compile(r"at\s+(?:\S+\s+)?\(?((?:/|\.{1,2}/)[^:)]+):\d+:\d+\)?"),
    # Node: at /abs/file.js:1:2
    re.compile(r"at\s+((?:/|\.{1,2}/)[^:]+):\d+:\d+"),
    # TypeScript/JavaScript: at fn (src/file.ts:1:2), at fn (dist/file.js:1:2)
    re.compile(r"at\s+(?:\S+\s+)?\(?([^:()\s]+\.[jt]sx?):\d+:\d+\)?"),
    # Python: File "app/main.py", line 10
    re.compile(r'File\s+"([^"]+)",\s+line\s+\d+'),
    # Ruby: /abs/file.rb:10:in
    re.compile(r"(/[^:\s]+\.rb):\d+:in"),
    # Go: /abs/file.go:10
    re.compile(r"(/[^:\s]+\.go):\d+"),
)

_IGNORED_PATH_PARTS = ("node_modules", "site-packages", "/usr/", "internal/")
_PROJECT_ROOTS = re.compile(r"/(src|lib|app|packages)/.+")

_DIR_ALIASES = ((re.compile(r"^dist/"), "src/"), (re.compile(r"^build/"), "src/"))
_EXT_ALIASES = ((re.compile(r"\.js$"), ".ts"), (re.compile(r"\.js$"), ".tsx"))


def normalize_file_path(path: str) -> str:
    """Strip ``./`` and cut absolute paths down to their project part."""
    normalized = re.sub(r"^\./", "", path)
    if normalized.startswith("/"):
        match = _PROJECT_ROOTS.search(normalized)
        if match:
            normalized = match.group(0)[1:]
    return normalized


def extract_file_paths(text: str) -> List[str]:
    """Find source file paths mentioned in a stack trace.

    Args:
        text: Stack trace or error message

    Returns:
        Unique normalized paths in the order they appear
    """
    found = []
    for pattern in _PATH_PATTERNS:
        for match in pattern.finditer(text):
            path = match.group(1)
            if any(part in path for part in _IGNORED_PATH_PARTS):
                continue
            found.append((match.start(1), normalize_file_path(path)))

    found.sort(key=lambda item: item[0])

    paths: List[str] = []
    for _, path in found:
        if path not in paths:
            paths.append(path)
    return paths


def _candidates(file_path: str) -> List[str]:
    candidates = [file_path]
    candidates.extend(pattern.sub(repl, file_path) for pattern, repl in _DIR_ALIASES)
    candidates.extend(pattern.sub(repl, file_path) for pattern, repl in _EXT_ALIASES)
    for dir_pattern, dir_repl in _DIR_ALIASES:
        for ext_pattern, ext_repl in _EXT_ALIASES:
            candidates.append(ext_pattern.sub(ext_repl, dir_pattern.sub(dir_repl, file_path)))
    return candidates


def resolve_file_path(working_dir: Path, file_path: str) -> Optional[Tuple[Path, str]]:
    """Map a stack trace path onto a file in the repository.

    Tries the path as-is, then ``dist/`` and ``build/`` mapped to ``src/``,
    then ``.js`` mapped to ``.ts``/``.tsx``, then both together.

    Returns:
        ``(absolute path, repository-relative path)`` or None
    """
    root = working_dir.resolve()
    for candidate in _candidates(file_path):
        full_path = (root / candidate).resolve()
        if not full_path.is_file():
            continue
        try:
            full_path.relative_to(root)
        except ValueError:
            continue
        return full_path, candidate
    return None


def extract_code_context(
    working_dir: Path, error_message: str, stack_trace: Optional[str] = None
) -> List[Tuple[str, str]]:
    """Read the source files an error refers to.

    Args:
        working_dir: Repository root
        error_message: Error message, searched when there is no stack trace
        stack_trace: Stack trace

    Returns:
        Up to five ``(path, content)`` pairs, each truncated to 10,000 chars
    """
    files: List[Tuple[str, str]] = []
    seen = set()

    for file_path in extract_file_paths(stack_trace or error_message)[:MAX_CONTEXT_FILES]:
        resolved = resolve_file_path(Path(working_dir), file_path)
        if resolved is None or resolved[1] in seen:
            continue
        full_path, relative = resolved
        seen.add(relative)

        try:
            content = full_path.read_text(encoding="utf-8")
        except (OSError, UnicodeError) as e:
            logger.debug(f"Skipping unreadable file {relative}: {e}")
            continue

        if len(content) > MAX_FILE_CHARS:
            content = content[:MAX_FILE_CHARS] + TRUNCATION_NOTE
        files.append((relative, content))

    return files


def find_related_files(working_dir: Path, file_path: str) -> List[str]:
    """Find tests and type definitions that sit next to a source file.

    Args:
        working_dir: Repository root
        file_path: Repository-relative source path

    Returns:
        Repository-relative paths that exist
    """
    path = Path(file_path)
    directory = path.parent
    base = path.stem

    patterns = [
        directory / f"{base}.test.ts",
        directory / f"{base}.spec.ts",
        directory / "__tests__" / f"{base}.test.ts",
        Path("test") / re.sub(r"\.ts$", ".test.ts", re.sub(r"^src/", "", file_path)),
        directory / f"{base}.types.ts",
        directory / "types.ts",
        directory / "index.d.ts",
    ]
    if path.suffix == ".py":
        patterns.extend(
            [
                directory / f"test_{base}.py",
                Path("tests") / f"test_{base}.py",
                directory / f"{base}.pyi",
            ]
        )

    return [
        candidate.as_posix()
        for candidate in patterns
        if (Path(working_dir) / candidate).is_file()
    ]
