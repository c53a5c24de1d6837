"""Error types for claude-code-stream.

Errors raised by the client and errors delivered on a stream's error
channel share one hierarchy rooted at ``ClaudeSDKError``:

- ``CLIConnectionError``: the CLI could not be found, started or read.
- ``ProcessError``: the CLI exited with a non-zero status.
- ``CLIJSONDecodeError``: an object from stdout could not be decoded.
- ``BufferOverflowError``: unparsed output grew past the parser's bound.
"""

from typing import Any


class ClaudeSDKError(Exception):
    """Base exception for all SDK errors."""

    def __str__(self) -> str:
        return self.args[0] if self.args else "An error occurred in the Claude Code SDK"


class CLIConnectionError(ClaudeSDKError):
    """Raised when unable to connect to, start or read from the CLI."""


class CLINotFoundError(CLIConnectionError):
    """Raised when the CLI is not found or not installed."""

    def __init__(self, message: str, cli_path: str | None = None):
        super().__init__(message)
        self.cli_path = cli_path

    def __str__(self) -> str:
        if self.cli_path:
            return f"{self.args[0]}: {self.cli_path}"
        return self.args[0]


class ProcessError(ClaudeSDKError):
    """Raised when the CLI process fails."""

    def __init__(self, message: str, exit_code: int | None = None, stderr: str | None = None):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr

    def __str__(self) -> str:
        message = self.args[0]
        if self.exit_code is not None:
            message = f"{message} (exit code: {self.exit_code})"
        if self.stderr:
            message = f"{message}\nError output: {self.stderr}"
        return message


class CLIJSONDecodeError(ClaudeSDKError):
    """Raised when unable to decode a JSON object from CLI output."""

    def __init__(self, line: str, original_error: BaseException):
        super().__init__(f"Failed to decode JSON: {line[:100]}{'...' if len(line) > 100 else ''}")
        self.line = line
        self.original_error = original_error


class MessageParseError(ClaudeSDKError):
    """Raised when a decoded JSON object is not a valid message."""

    def __init__(self, message: str, data: Any = None):
        super().__init__(message)
        self.data = data


class BufferOverflowError(ClaudeSDKError):
    """Raised when buffered output exceeds the parser's maximum size."""

    def __init__(self, max_buffer_size: int, buffered_size: int, prefix: str):
        super().__init__(
            f"JSON message exceeded maximum buffer size of {max_buffer_size} bytes "
            f"({buffered_size} bytes buffered): data starts with {prefix!r}"
        )
        self.max_buffer_size = max_buffer_size
        self.buffered_size = buffered_size
        self.prefix = prefix


class StreamClosedError(ClaudeSDKError):
    """Raised when operating on a stream that has already been closed."""


__all__ = [
    "ClaudeSDKError",
    "CLIConnectionError",
    "CLINotFoundError",
    "ProcessError",
    "CLIJSONDecodeError",
    "MessageParseError",
    "BufferOverflowError",
    "StreamClosedError",
]
