"""Unit tests for error grouping, normalization and fingerprinting."""

from datetime import datetime, timedelta, timezone

import pytest

from autofix.core.fingerprint import (
    ErrorGroup,
    LogEntry,
    NormalizedError,
    create_fingerprint,
    extract_error_type,
    group_consecutive_errors,
    is_error_log,
    normalize_message,
)

BASE_TIME = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


def make_error(message, stack_trace=None, error_type=None):
    return NormalizedError(
        timestamp=BASE_TIME,
        message=message,
        service_name="api",
        environment_name="production",
        project_id="proj-1",
        stack_trace=stack_trace,
        error_type=error_type,
    )


def make_logs(*messages):
    return [
        LogEntry(timestamp=BASE_TIME + timedelta(seconds=i), message=message)
        for i, message in enumerate(messages)
    ]


class TestIsErrorLog:
    """Test error line classification."""

    @pytest.mark.parametrize(
        "message",
        [
            "TypeError: x is undefined",
            "Unhandled promise rejection",
            "request FAILED after 3 retries",
            "panic: runtime error",
            "FATAL: database is down",
        ],
    )
    def test_keywords(self, message):
        """Test keyword matches are case-insensitive."""
        assert is_error_log(message)

    def test_severity(self):
        """Test error severity alone is enough."""
        assert is_error_log("something odd", severity="error")
        assert is_error_log("something odd", severity="ERROR")

    def test_plain_lines(self):
        """Test ordinary lines are not errors."""
        assert not is_error_log("GET /health 200")
        assert not is_error_log("server listening on 3000", severity="info")


class TestGroupConsecutiveErrors:
    """Test grouping of log lines into incidents."""

    def test_stack_frames_join_group(self):
        """Test continuation lines extend the open group."""
        logs = make_logs(
            "TypeError: Cannot read property 'x' of undefined",
            "    at foo (src/service.ts:10:5)",
            "    at bar (src/index.ts:20:10)",
        )

        groups = group_consecutive_errors(logs)

        assert len(groups) == 1
        assert groups[0].timestamp == BASE_TIME
        assert len(groups[0].lines) == 3

    def test_caret_marker_joins_group(self):
        """Test syntax error pointers are continuation lines."""
        groups = group_consecutive_errors(make_logs("SyntaxError: Unexpected token", "    ^"))
        assert groups[0].lines == ["SyntaxError: Unexpected token", "    ^"]

    def test_normal_line_closes_group(self):
        """Test an ordinary line separates two incidents."""
        logs = make_logs(
            "Error: first",
            "    at a (src/a.ts:1:1)",
            "GET /health 200",
            "Error: second",
        )

        groups = group_consecutive_errors(logs)

        assert [g.lines[0] for g in groups] == ["Error: first", "Error: second"]
        assert groups[1].timestamp == BASE_TIME + timedelta(seconds=3)

    def test_consecutive_error_lines_share_group(self):
        """Test adjacent error lines form one run."""
        groups = group_consecutive_errors(make_logs("Error: one", "Error: two"))
        assert len(groups) == 1
        assert groups[0].lines == ["Error: one", "Error: two"]

    def test_orphan_continuation_is_dropped(self):
        """Test a stack frame without an open group starts nothing."""
        groups = group_consecutive_errors(make_logs("    at a (src/a.ts:1:1)", "all good"))
        assert groups == []


class TestExtractErrorType:
    """Test error type extraction."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("TypeError: x is undefined", "TypeError"),
            ("NullPointerException: boom", "NullPointerException"),
            ("Error: ENOENT: no such file", "ENOENT"),
            ("Uncaught ReferenceError foo is not defined", "ReferenceError"),
            ("[DatabaseError] connection lost", "DatabaseError"),
            ("something broke", None),
        ],
    )
    def test_patterns(self, message, expected):
        """Test each pattern in order."""
        assert extract_error_type(message) == expected


class TestNormalizeMessage:
    """Test volatile substring normalization."""

    def test_uuid(self):
        """Test UUIDs are replaced before hex ids."""
        message = "User 550e8400-e29b-41d4-a716-446655440000 not found"
        assert normalize_message(message) == "User <UUID> not found"

    def test_hex_id(self):
        """Test long hex ids are replaced."""
        assert normalize_message("doc 507f1f77bcf86cd799439011 missing") == "doc <ID> missing"

    def test_timestamp(self):
        """Test ISO timestamps are replaced."""
        assert normalize_message("at 2024-01-15T10:00:00.123Z failed") == "at <TIMESTAMP> failed"

    def test_numbers_and_ips(self):
        """Test long numbers and IP addresses are replaced."""
        assert normalize_message("order 1234567 from 10.0.0.12") == "order <NUM> from <IP>"

    def test_short_numbers_kept(self):
        """Test short integers survive."""
        assert normalize_message("retry 3 of 5") == "retry 3 of 5"

    def test_line_and_column(self):
        """Test line:column suffixes are replaced."""
        assert normalize_message("src/a.ts:10:5") == "src/a.ts:<LINE>"

    def test_whitespace_and_length(self):
        """Test whitespace is collapsed and output is capped."""
        assert normalize_message("  a \n\t b  ") == "a b"
        assert len(normalize_message("x " * 500)) == 200


class TestCreateFingerprint:
    """Test fingerprint determinism and discrimination."""

    def test_format(self):
        """Test fingerprint is 16 lowercase hex chars."""
        fingerprint = create_fingerprint(make_error("TypeError: boom"))
        assert len(fingerprint) == 16
        assert fingerprint == fingerprint.lower()
        int(fingerprint, 16)

    def test_deterministic(self):
        """Test equal input gives equal output."""
        assert create_fingerprint(make_error("TypeError: boom")) == create_fingerprint(
            make_error("TypeError: boom")
        )

    def test_volatile_parts_collide(self):
        """Test messages differing only in ids and timestamps collide."""
        stack = "    at handler (src/users.ts:42:7)"
        first = make_error(
            "TypeError: user 550e8400-e29b-41d4-a716-446655440000 at 2024-01-15T10:00:00Z",
            stack_trace=stack,
        )
        second = make_error(
            "TypeError: user 123e4567-e89b-12d3-a456-426614174000 at 2024-02-01T08:30:12Z",
            stack_trace=stack,
        )
        assert create_fingerprint(first) == create_fingerprint(second)

    def test_different_frames_differ(self):
        """Test the same message at different call sites does not collide."""
        first = make_error("TypeError: boom", stack_trace="    at a (src/a.ts:1:1)")
        second = make_error("TypeError: boom", stack_trace="    at b (src/b.ts:1:1)")
        assert create_fingerprint(first) != create_fingerprint(second)

    def test_only_first_frame_counts(self):
        """Test deeper frames do not affect the fingerprint."""
        first = make_error("TypeError: boom", stack_trace="    at a (src/a.ts:1:1)\n    at x (src/x.ts:1:1)")
        second = make_error("TypeError: boom", stack_trace="    at a (src/a.ts:1:1)\n    at y (src/y.ts:1:1)")
        assert create_fingerprint(first) == create_fingerprint(second)

    def test_explicit_error_type_wins(self):
        """Test a provided error type overrides extraction."""
        extracted = make_error("TypeError: boom")
        explicit = make_error("TypeError: boom", error_type="RangeError")
        assert create_fingerprint(extracted) != create_fingerprint(explicit)


class TestNormalizedErrorFromGroup:
    """Test building errors from log groups."""

    def test_from_group(self):
        """Test message, stack and type come from the group lines."""
        group = ErrorGroup(
            timestamp=BASE_TIME,
            lines=[
                "TypeError: Cannot read property 'x' of undefined",
                "    at foo (src/service.ts:10:5)",
                "    ^",
                "    at bar (src/index.ts:20:10)",
            ],
        )

        error = NormalizedError.from_group(group, "api", "production", "proj-1")

        assert error.message == "TypeError: Cannot read property 'x' of undefined"
        assert error.stack_trace == "    at foo (src/service.ts:10:5)\n    at bar (src/index.ts:20:10)"
        assert error.error_type == "TypeError"
        assert error.raw_lines == tuple(group.lines)

    def test_without_stack(self):
        """Test an error without frames has no stack trace."""
        error = NormalizedError.from_group(
            ErrorGroup(timestamp=BASE_TIME, lines=["fatal: out of memory"]), "api", "prod", "p"
        )
        assert error.stack_trace is None
        assert error.error_type is None
