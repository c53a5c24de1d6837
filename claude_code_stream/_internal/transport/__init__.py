"""Transport implementations for claude-code-stream.

A transport owns the CLI process and exposes its raw output as two anyio
memory object streams: stdout chunks and transport errors. Higher-level
components like QueryStream build on top of this to parse and deliver
messages.
"""

import abc

from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectReceiveStream

from claude_code_stream._errors import ClaudeSDKError


class Transport(abc.ABC):
    """Abstract transport for Claude Code CLI communication.

    Note: This is an internal API. QueryStream drives the transport and
    owns the task group its readers run in.
    """

    @abc.abstractmethod
    async def connect(self) -> None:
        """Prepare the transport for streaming.

        For subprocess transports, this resolves the executable and the
        command line without starting the process.
        """

    @abc.abstractmethod
    async def stream(
        self, task_group: TaskGroup
    ) -> tuple[MemoryObjectReceiveStream[bytes], MemoryObjectReceiveStream[ClaudeSDKError]]:
        """Start producing output into tasks of ``task_group``.

        Returns:
            Receive streams for stdout chunks and for transport errors.
            Calling this again returns the same pair.
        """

    @abc.abstractmethod
    async def close(self) -> None:
        """Stop the transport and release its resources."""

    @abc.abstractmethod
    def is_connected(self) -> bool:
        """Check if ``connect()`` has succeeded and the transport is not closed."""


__all__ = ["Transport"]
