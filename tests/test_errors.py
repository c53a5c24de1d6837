"""Tests for the error hierarchy."""

import json

from claude_code_stream import (
    BufferOverflowError,
    ClaudeSDKError,
    CLIConnectionError,
    CLIJSONDecodeError,
    CLINotFoundError,
    MessageParseError,
    ProcessError,
    StreamClosedError,
)


class TestErrorHierarchy:
    """Test error classes and their messages."""

    def test_all_errors_share_base(self):
        for error_class in (
            CLIConnectionError,
            CLINotFoundError,
            ProcessError,
            CLIJSONDecodeError,
            MessageParseError,
            BufferOverflowError,
            StreamClosedError,
        ):
            assert issubclass(error_class, ClaudeSDKError)
        assert issubclass(CLINotFoundError, CLIConnectionError)

    def test_base_message_fallback(self):
        assert str(ClaudeSDKError()) == "An error occurred in the Claude Code SDK"

    def test_cli_not_found_includes_path(self):
        error = CLINotFoundError("Claude Code not found at", "/usr/bin/claude")
        assert str(error) == "Claude Code not found at: /usr/bin/claude"
        assert str(CLINotFoundError("missing")) == "missing"

    def test_process_error_details(self):
        """Exit code and stderr are appended to the message."""
        error = ProcessError("CLI process failed", exit_code=2, stderr="bad flag")

        assert str(error) == "CLI process failed (exit code: 2)\nError output: bad flag"
        assert str(ProcessError("CLI process failed")) == "CLI process failed"

    def test_decode_error_truncates_display(self):
        """Only the first 100 characters of the line are shown."""
        line = "{" + "x" * 200
        cause = json.JSONDecodeError("Expecting value", line, 1)
        error = CLIJSONDecodeError(line, cause)

        assert str(error) == f"Failed to decode JSON: {line[:100]}..."
        assert error.line == line
        assert error.original_error is cause

    def test_short_decode_error(self):
        error = CLIJSONDecodeError("{}", ValueError("nope"))
        assert str(error) == "Failed to decode JSON: {}"

    def test_buffer_overflow_details(self):
        error = BufferOverflowError(1024, 2048, '{"type": ...')

        assert error.max_buffer_size == 1024
        assert error.buffered_size == 2048
        assert "maximum buffer size of 1024 bytes" in str(error)
        assert "(2048 bytes buffered)" in str(error)
