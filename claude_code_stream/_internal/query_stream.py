"""Stream coordinator joining the transport and the parser.

QueryStream owns the pipeline of one query:

    transport chunks -> parser -> public message stream
    transport errors + parser errors -> public error stream

Everything runs under a single cancel scope, so ``close()``, a timeout or
cancellation of the task that started the stream all stop the CLI process
and close both public streams.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from types import TracebackType
from typing import Callable, Optional

import anyio
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectReceiveStream

from claude_code_stream._errors import (
    BufferOverflowError,
    ClaudeSDKError,
    CLIConnectionError,
    CLIJSONDecodeError,
    ProcessError,
    StreamClosedError,
)
from claude_code_stream._internal.stream_parser import StreamParser
from claude_code_stream._internal.transport import Transport
from claude_code_stream.types import Message

logger = logging.getLogger(__name__)

_MESSAGE_STREAM_SIZE = 50
_ERROR_STREAM_SIZE = 20

ErrorHandler = Callable[[ClaudeSDKError], None]


class StreamState(str, Enum):
    """Lifecycle of a QueryStream."""

    NOT_STARTED = "not_started"
    STREAMING = "streaming"
    CLOSED = "closed"


class QueryStream:
    """Messages and errors of a single CLI query.

    Consume ``messages()`` and ``errors()`` concurrently (or pass
    ``on_error``); both streams close when the pipeline ends. ``close()``
    must eventually be awaited by the task that called ``start()``, which
    ``async with`` takes care of.
    """

    def __init__(
        self,
        transport: Transport,
        parser: StreamParser,
        *,
        timeout: float | None = None,
        on_error: Optional[ErrorHandler] = None,
    ):
        """Initialize the stream.

        Args:
            transport: Transport producing raw CLI output.
            parser: Parser turning that output into messages.
            timeout: Seconds after ``start()`` at which the pipeline is
                cancelled.
            on_error: Called with each pipeline error instead of delivering
                it on ``errors()``.
        """
        self._transport = transport
        self._parser = parser
        self._timeout = timeout
        self._on_error = on_error

        self._message_send, self._message_receive = anyio.create_memory_object_stream[Message](
            max_buffer_size=_MESSAGE_STREAM_SIZE
        )
        self._error_send, self._error_receive = anyio.create_memory_object_stream[ClaudeSDKError](
            max_buffer_size=_ERROR_STREAM_SIZE
        )

        # State tracking
        self._state = StreamState.NOT_STARTED
        self._state_lock = threading.Lock()
        self._start_called = False
        self._finished = anyio.Event()

        # Task group for the pipeline, entered by the task calling start()
        self._tg: TaskGroup | None = None
        self._host_task_id: int | None = None
        self._cancel_scope: anyio.CancelScope | None = None

    @property
    def state(self) -> StreamState:
        with self._state_lock:
            return self._state

    def is_closed(self) -> bool:
        return self.state is StreamState.CLOSED

    def messages(self) -> MemoryObjectReceiveStream[Message]:
        """Parsed messages in the order the CLI produced them."""
        return self._message_receive

    def errors(self) -> MemoryObjectReceiveStream[ClaudeSDKError]:
        """Transport and parser errors, each delivered once."""
        return self._error_receive

    async def start(self) -> None:
        """Connect the transport and launch the pipeline.

        Raises:
            StreamClosedError: If the stream has been closed.
            RuntimeError: If the stream was already started.
            CLIConnectionError: If the transport cannot connect.
        """
        with self._state_lock:
            if self._state is StreamState.CLOSED:
                raise StreamClosedError("Cannot start a closed stream")
            if self._start_called:
                raise RuntimeError("QueryStream has already been started")
            self._start_called = True

        try:
            await self._transport.connect()
        except BaseException:
            self._close_outputs()
            raise

        self._cancel_scope = anyio.CancelScope()
        if self._timeout is not None:
            self._cancel_scope.deadline = anyio.current_time() + self._timeout

        with self._state_lock:
            if self._state is StreamState.CLOSED:
                self._close_outputs()
                raise StreamClosedError("Stream was closed while starting")
            self._state = StreamState.STREAMING

        self._tg = anyio.create_task_group()
        await self._tg.__aenter__()
        self._host_task_id = anyio.get_current_task().id
        self._tg.start_soon(self._run, self._cancel_scope)
        logger.debug("[query_stream] Pipeline started", extra={"timeout": self._timeout})

    async def _run(self, cancel_scope: anyio.CancelScope) -> None:
        try:
            with cancel_scope:
                async with anyio.create_task_group() as tg:
                    chunks, transport_errors = await self._transport.stream(tg)
                    messages, parser_errors = self._parser.parse_messages(tg, chunks)
                    tg.start_soon(self._forward_messages, messages)
                    tg.start_soon(self._fan_in_errors, transport_errors, parser_errors)
            if cancel_scope.cancelled_caught:
                logger.debug("[query_stream] Pipeline cancelled")
        finally:
            self._close_outputs()
            logger.debug("[query_stream] Pipeline finished")

    def _close_outputs(self) -> None:
        self._message_send.close()
        self._error_send.close()
        self._finished.set()

    async def _forward_messages(self, messages: MemoryObjectReceiveStream[Message]) -> None:
        async with messages, self._message_send:
            async for message in messages:
                try:
                    await self._message_send.send(message)
                except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                    # Nobody is listening; keep draining so the parser never blocks.
                    logger.debug(f"[query_stream] Discarding {message.type} message")

    async def _fan_in_errors(
        self,
        *sources: MemoryObjectReceiveStream[ClaudeSDKError],
    ) -> None:
        # The public stream closes only after every source has closed.
        async with self._error_send:
            async with anyio.create_task_group() as tg:
                for source in sources:
                    tg.start_soon(self._forward_errors, source)

    async def _forward_errors(self, source: MemoryObjectReceiveStream[ClaudeSDKError]) -> None:
        async with source:
            async for error in source:
                self._log_error(error)
                if self._on_error is not None:
                    try:
                        self._on_error(error)
                    except Exception:
                        logger.exception("[query_stream] on_error callback failed")
                    continue
                try:
                    await self._error_send.send(error)
                except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                    logger.debug(f"[query_stream] Discarding error: {error}")

    @staticmethod
    def _log_error(error: ClaudeSDKError) -> None:
        if isinstance(error, ProcessError):
            logger.error(
                f"[query_stream] CLI process failed: {error.args[0]}",
                extra={"exit_code": error.exit_code},
            )
        elif isinstance(error, CLIConnectionError):
            logger.error(f"[query_stream] Connection error: {error}")
        elif isinstance(error, BufferOverflowError):
            logger.warning(
                "[query_stream] Parser buffer overflow",
                extra={"max_buffer_size": error.max_buffer_size, "buffered_size": error.buffered_size},
            )
        elif isinstance(error, CLIJSONDecodeError):
            logger.warning(f"[query_stream] {error}")
        else:
            logger.warning(f"[query_stream] Stream error: {error}")

    async def wait(self) -> None:
        """Wait until the pipeline has finished and both streams are closed."""
        await self._finished.wait()

    async def close(self) -> None:
        """Cancel the pipeline, close the transport and wait for shutdown.

        Only the first call closes the transport and raises its error, if
        any; later calls return quietly.
        """
        first_close = False
        with self._state_lock:
            if self._state is not StreamState.CLOSED:
                self._state = StreamState.CLOSED
                first_close = True

        close_error: ClaudeSDKError | None = None
        with anyio.CancelScope(shield=True):
            if first_close:
                if self._cancel_scope is not None:
                    self._cancel_scope.cancel()
                try:
                    await self._transport.close()
                except ClaudeSDKError as e:
                    close_error = e
                if not self._start_called:
                    self._close_outputs()
                logger.debug("[query_stream] Stream closed")

            if self._tg is None or anyio.get_current_task().id != self._host_task_id:
                await self._finished.wait()

        # The task group must be exited by the task that entered it.
        if self._tg is not None and anyio.get_current_task().id == self._host_task_id:
            tg, self._tg = self._tg, None
            await tg.__aexit__(None, None, None)

        if close_error is not None:
            raise close_error

    async def __aenter__(self) -> "QueryStream":
        # Streams returned by ClaudeCodeClient.query() are already running.
        if not self._start_called:
            await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["QueryStream", "StreamState"]
