"""Unit tests for source context extraction."""

import pytest

from autofix.agents.code_context import (
    extract_code_context,
    extract_file_paths,
    find_related_files,
    normalize_file_path,
    resolve_file_path,
)


@pytest.fixture
def repo(tmp_path):
    """Repository with TypeScript and Python sources."""
    (tmp_path / "src" / "__tests__").mkdir(parents=True)
    (tmp_path / "src" / "service.ts").write_text("export const a = 1;\n")
    (tmp_path / "src" / "index.ts").write_text("import './service';\n")
    (tmp_path / "src" / "__tests__" / "service.test.ts").write_text("test('a', () => {});\n")
    (tmp_path / "src" / "types.ts").write_text("export type A = number;\n")
    (tmp_path / "app").mkdir()
    (tmp_path / "app" / "main.py").write_text("print('hi')\n")
    (tmp_path / "tests").mkdir()
    (tmp_path / "tests" / "test_main.py").write_text("def test_main(): pass\n")
    return tmp_path


class TestNormalizeFilePath:
    """Test path normalization."""

    def test_relative_prefix(self):
        """Test ./ is stripped."""
        assert normalize_file_path("./src/a.ts") == "src/a.ts"

    def test_absolute_project_path(self):
        """Test absolute paths are cut at the project root."""
        assert normalize_file_path("/app/src/a.ts") == "src/a.ts"
        assert normalize_file_path("/srv/app/main.py") == "app/main.py"

    def test_unknown_absolute_path(self):
        """Test absolute paths outside known roots are kept."""
        assert normalize_file_path("/opt/thing.js") == "/opt/thing.js"


class TestExtractFilePaths:
    """Test stack trace path extraction."""

    def test_node_trace(self):
        """Test Node frames in order, without duplicates or dependencies."""
        trace = "\n".join(
            [
                "    at getUser (/app/src/service.ts:10:5)",
                "    at Object.<anonymous> (/app/node_modules/express/lib/router.js:1:1)",
                "    at main (src/index.ts:20:10)",
                "    at getUser (/app/src/service.ts:12:1)",
            ]
        )
        assert extract_file_paths(trace) == ["src/service.ts", "src/index.ts"]

    def test_relative_node_frame(self):
        """Test ./ frames are recognised."""
        assert extract_file_paths("    at ./dist/server.js:3:7") == ["dist/server.js"]

    def test_python_trace(self):
        """Test Python frames, skipping installed packages."""
        trace = (
            'File "/srv/app/main.py", line 10, in handler\n'
            'File "/usr/lib/python3.11/site-packages/flask/app.py", line 1, in wsgi'
        )
        assert extract_file_paths(trace) == ["app/main.py"]

    def test_ruby_and_go(self):
        """Test Ruby and Go frames."""
        assert extract_file_paths("/app/lib/worker.rb:12:in `run'") == ["lib/worker.rb"]
        assert extract_file_paths("/app/src/main.go:42 +0x1d") == ["src/main.go"]

    def test_nothing_found(self):
        """Test messages without paths."""
        assert extract_file_paths("TypeError: boom") == []


class TestResolveFilePath:
    """Test mapping trace paths onto the repository."""

    def test_direct(self, repo):
        """Test existing paths resolve as-is."""
        full_path, relative = resolve_file_path(repo, "src/service.ts")
        assert relative == "src/service.ts"
        assert full_path == (repo / "src" / "service.ts").resolve()

    def test_compiled_output(self, repo):
        """Test dist JavaScript maps back to TypeScript sources."""
        assert resolve_file_path(repo, "dist/service.js")[1] == "src/service.ts"
        assert resolve_file_path(repo, "build/index.js")[1] == "src/index.ts"

    def test_missing(self, repo):
        """Test unknown files resolve to None."""
        assert resolve_file_path(repo, "src/missing.ts") is None

    def test_outside_repository(self, repo, tmp_path_factory):
        """Test paths escaping the repository are refused."""
        outside = tmp_path_factory.mktemp("outside") / "secret.ts"
        outside.write_text("secret")
        assert resolve_file_path(repo, str(outside)) is None
        assert resolve_file_path(repo, "../" + outside.parent.name + "/secret.ts") is None


class TestExtractCodeContext:
    """Test reading context files."""

    def test_reads_trace_files(self, repo):
        """Test files from the trace are read in order."""
        context = extract_code_context(
            repo,
            "TypeError: boom",
            "    at a (dist/service.js:1:1)\n    at b (src/index.ts:2:2)",
        )
        assert context == [
            ("src/service.ts", "export const a = 1;\n"),
            ("src/index.ts", "import './service';\n"),
        ]

    def test_falls_back_to_message(self, repo):
        """Test the message is searched without a stack trace."""
        context = extract_code_context(repo, 'File "app/main.py", line 1, in <module>')
        assert context == [("app/main.py", "print('hi')\n")]

    def test_truncates_large_files(self, repo):
        """Test large files are truncated with a note."""
        (repo / "src" / "big.ts").write_text("x" * 20000)
        context = extract_code_context(repo, "boom", "    at a (src/big.ts:1:1)")
        assert context[0][1] == "x" * 10000 + "\n... (truncated)"

    def test_at_most_five_files(self, repo):
        """Test no more than five files are returned."""
        frames = []
        for i in range(7):
            (repo / "src" / f"f{i}.ts").write_text(str(i))
            frames.append(f"    at f{i} (src/f{i}.ts:1:1)")
        assert len(extract_code_context(repo, "boom", "\n".join(frames))) == 5


class TestFindRelatedFiles:
    """Test related file discovery."""

    def test_typescript(self, repo):
        """Test tests and type files next to a TypeScript source."""
        assert find_related_files(repo, "src/service.ts") == [
            "src/__tests__/service.test.ts",
            "src/types.ts",
        ]

    def test_python(self, repo):
        """Test Python test modules."""
        assert find_related_files(repo, "app/main.py") == ["tests/test_main.py"]
