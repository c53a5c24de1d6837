"""Client entry points for streaming Claude Code queries."""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional

from claude_code_stream._errors import (
    ClaudeSDKError,
    CLIConnectionError,
    ProcessError,
)
from claude_code_stream._internal.query_stream import ErrorHandler, QueryStream
from claude_code_stream._internal.stream_parser import DEFAULT_MAX_BUFFER_SIZE, StreamParser
from claude_code_stream._internal.transport.subprocess_cli import SubprocessCLITransport
from claude_code_stream.options import ClaudeCodeOptions
from claude_code_stream.types import Message


class ClaudeCodeClient:
    """Starts Claude Code CLI queries.

    Every query gets its own CLI process, parser and stream, so one client
    can run several queries at once.

    Example:
        client = ClaudeCodeClient()
        async with await client.query("Explain this repository") as stream:
            async for message in stream.messages():
                print(message)
    """

    def __init__(
        self,
        *,
        cli_path: str | os.PathLike[str] | None = None,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
    ):
        self._cli_path = cli_path
        self._max_buffer_size = DEFAULT_MAX_BUFFER_SIZE
        self.set_parser_buffer_size(max_buffer_size)

    @property
    def max_buffer_size(self) -> int:
        return self._max_buffer_size

    def set_parser_buffer_size(self, size: int) -> None:
        """Set the parser buffer limit used by subsequent queries."""
        if size <= 0:
            raise ValueError(f"Parser buffer size must be positive, got {size}")
        self._max_buffer_size = size

    async def query(
        self,
        prompt: str,
        options: Optional[ClaudeCodeOptions] = None,
        *,
        timeout: float | None = None,
        on_error: Optional[ErrorHandler] = None,
    ) -> QueryStream:
        """Start the CLI for ``prompt`` and return its running stream.

        Raises:
            CLINotFoundError: If the CLI cannot be found.
            CLIConnectionError: If the query cannot be prepared.
        """
        transport = SubprocessCLITransport(prompt, options, cli_path=self._cli_path)
        parser = StreamParser(self._max_buffer_size)
        stream = QueryStream(transport, parser, timeout=timeout, on_error=on_error)
        await stream.start()
        return stream


@asynccontextmanager
async def query(
    prompt: str,
    options: Optional[ClaudeCodeOptions] = None,
    *,
    cli_path: str | os.PathLike[str] | None = None,
    timeout: float | None = None,
) -> AsyncGenerator[AsyncIterator[Message], None]:
    """One-shot helper: run a prompt and iterate over its messages.

    The CLI runs for as long as the ``async with`` block is open and is shut
    down when the block exits, even when iteration stopped early::

        async with query("Explain this repository") as messages:
            async for message in messages:
                print(message)

    Recoverable stream errors (undecodable output, buffer overflows) are
    logged. A failed CLI process raises ``ProcessError`` from the iterator
    once all messages have been yielded; a query that could not start and
    produced no messages raises its ``CLIConnectionError``.
    """
    errors: list[ClaudeSDKError] = []
    client = ClaudeCodeClient(cli_path=cli_path)
    async with await client.query(prompt, options, timeout=timeout, on_error=errors.append) as stream:
        yield _iter_messages(stream, errors)


async def _iter_messages(stream: QueryStream, errors: list[ClaudeSDKError]) -> AsyncIterator[Message]:
    # Holds no cancel scope across yield; the enclosing query() owns the pipeline.
    received = 0
    async for message in stream.messages():
        received += 1
        yield message
    await stream.wait()

    for error in errors:
        if isinstance(error, ProcessError):
            raise error
    if received == 0:
        for error in errors:
            if isinstance(error, CLIConnectionError):
                raise error


__all__ = ["ClaudeCodeClient", "query"]
