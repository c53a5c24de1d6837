"""Incremental JSON parser for CLI stdout.

The CLI writes one JSON object per event, but the transport hands over
chunks that need not line up with object boundaries. ``StreamParser`` keeps
a byte buffer between chunks, finds complete top-level ``{...}`` objects by
brace matching (honouring strings and escapes) and decodes each one into a
typed Message.

Results are returned in input order as either messages or errors. Decode
errors and buffer overflows never stop the parser; the next object is
parsed normally.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Union

import anyio
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from claude_code_stream._errors import (
    BufferOverflowError,
    ClaudeSDKError,
    CLIJSONDecodeError,
    MessageParseError,
)
from claude_code_stream._internal.message_parser import parse_message
from claude_code_stream.types import Message

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER_SIZE = 1024 * 1024  # 1MB

_OVERFLOW_PREFIX_SIZE = 100
_MESSAGE_STREAM_SIZE = 10
_ERROR_STREAM_SIZE = 5

# Only these bytes can change the scanner state.
_STRUCTURAL = re.compile(rb'[{}"\\]')
_OPEN_BRACE = ord("{")
_CLOSE_BRACE = ord("}")
_QUOTE = ord('"')
_BACKSLASH = ord("\\")
_WHITESPACE = b" \t\r\n"

ParseResult = Union[Message, ClaudeSDKError]


def _noise_size(segment: bytes | bytearray) -> int:
    return len(bytes(segment).translate(None, _WHITESPACE))


class StreamParser:
    """Reassembles JSON objects from arbitrarily chunked CLI output.

    A parser instance owns its buffer and is meant to be driven by a single
    task; it does no locking.
    """

    def __init__(self, max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE):
        if max_buffer_size <= 0:
            max_buffer_size = DEFAULT_MAX_BUFFER_SIZE
        self._max_buffer_size = max_buffer_size
        self._buffer = bytearray()

        # Scanner state carried across chunks while an object is incomplete.
        self._scan_offset = 0
        self._depth = 0
        self._in_string = False
        self._escaped_index = -1

    @property
    def max_buffer_size(self) -> int:
        return self._max_buffer_size

    @property
    def buffered_size(self) -> int:
        """Number of bytes waiting for the rest of an object."""
        return len(self._buffer)

    def parse_messages(
        self,
        task_group: TaskGroup,
        chunks: MemoryObjectReceiveStream[bytes],
    ) -> tuple[MemoryObjectReceiveStream[Message], MemoryObjectReceiveStream[ClaudeSDKError]]:
        """Start parsing ``chunks`` in a task of ``task_group``.

        Returns:
            Receive streams for decoded messages and for decode/overflow
            errors. Both close once ``chunks`` is exhausted and the remaining
            buffer has been flushed, or when the task group is cancelled.
        """
        message_send, message_receive = anyio.create_memory_object_stream[Message](
            max_buffer_size=_MESSAGE_STREAM_SIZE
        )
        error_send, error_receive = anyio.create_memory_object_stream[ClaudeSDKError](
            max_buffer_size=_ERROR_STREAM_SIZE
        )
        task_group.start_soon(self._parse_loop, chunks, message_send, error_send)
        return message_receive, error_receive

    async def _parse_loop(
        self,
        chunks: MemoryObjectReceiveStream[bytes],
        message_send: MemoryObjectSendStream[Message],
        error_send: MemoryObjectSendStream[ClaudeSDKError],
    ) -> None:
        async with chunks, message_send, error_send:
            try:
                async for chunk in chunks:
                    await self._dispatch(self.feed(chunk), message_send, error_send)
                await self._dispatch(self.flush(), message_send, error_send)
            except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                logger.debug("[stream_parser] Output stream closed by consumer; stopping")

    @staticmethod
    async def _dispatch(
        results: list[ParseResult],
        message_send: MemoryObjectSendStream[Message],
        error_send: MemoryObjectSendStream[ClaudeSDKError],
    ) -> None:
        for result in results:
            if isinstance(result, ClaudeSDKError):
                await error_send.send(result)
            else:
                await message_send.send(result)

    def feed(self, chunk: bytes) -> list[ParseResult]:
        """Append ``chunk`` and return everything that became complete."""
        if not chunk:
            return []

        self._buffer += chunk
        if len(self._buffer) > self._max_buffer_size:
            return [self._overflow()]
        return self._extract()

    def flush(self) -> list[ParseResult]:
        """Decode whatever is left in the buffer once, then clear it.

        Called when the input ends; an unterminated object yields a decode
        error.
        """
        remaining = bytes(self._buffer).strip()
        self._reset()
        if not remaining:
            return []
        result = self._decode(remaining)
        return [result] if result is not None else []

    def _reset(self) -> None:
        self._buffer.clear()
        self._scan_offset = 0
        self._depth = 0
        self._in_string = False
        self._escaped_index = -1

    def _overflow(self) -> BufferOverflowError:
        buffered_size = len(self._buffer)
        prefix = bytes(self._buffer[:_OVERFLOW_PREFIX_SIZE]).decode("utf-8", errors="replace")
        if buffered_size > _OVERFLOW_PREFIX_SIZE:
            prefix += "..."
        self._reset()
        return BufferOverflowError(self._max_buffer_size, buffered_size, prefix)

    def _extract(self) -> list[ParseResult]:
        results: list[ParseResult] = []
        buffer = self._buffer
        depth = self._depth
        in_string = self._in_string
        escaped_index = self._escaped_index
        start = 0 if depth > 0 else -1
        consumed = 0
        noise = 0

        for match in _STRUCTURAL.finditer(buffer, self._scan_offset):
            index = match.start()
            if index == escaped_index:
                continue
            byte = buffer[index]

            if in_string:
                if byte == _BACKSLASH:
                    escaped_index = index + 1
                elif byte == _QUOTE:
                    in_string = False
                continue

            if depth == 0:
                # Outside any object only an opening brace matters.
                if byte == _OPEN_BRACE:
                    noise += _noise_size(buffer[consumed:index])
                    start = index
                    depth = 1
                continue

            if byte == _QUOTE:
                in_string = True
            elif byte == _OPEN_BRACE:
                depth += 1
            elif byte == _CLOSE_BRACE:
                depth -= 1
                if depth == 0:
                    result = self._decode(bytes(buffer[start : index + 1]))
                    if result is not None:
                        results.append(result)
                    consumed = index + 1
                    start = -1

        if depth > 0:
            noise += _noise_size(buffer[consumed:start])
            scanned = len(buffer)
            del buffer[:start]
            self._scan_offset = len(buffer)
            self._escaped_index = escaped_index - start if escaped_index >= scanned else -1
        else:
            noise += _noise_size(buffer[consumed:])
            buffer.clear()
            self._scan_offset = 0
            self._escaped_index = -1

        self._depth = depth
        self._in_string = in_string

        if noise:
            logger.debug(
                "[stream_parser] Skipped non-JSON output",
                extra={"skipped_bytes": noise},
            )
        return results

    def _decode(self, raw: bytes) -> ParseResult | None:
        text = raw.decode("utf-8", errors="replace")
        try:
            data = json.loads(raw.decode("utf-8"))
            return parse_message(data)
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError, MessageParseError) as e:
            error = CLIJSONDecodeError(text, e)
            error.__cause__ = e
            return error


__all__ = ["StreamParser", "ParseResult", "DEFAULT_MAX_BUFFER_SIZE"]
