"""Subprocess transport implementation using anyio for clean async I/O.

This module runs the Claude Code CLI in print mode and exposes its output
as anyio memory object streams: one for stdout lines, one for errors
(stdout read failures, collected stderr text and non-zero exits).
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from collections.abc import AsyncIterator
from contextlib import suppress
from pathlib import Path

import anyio
from anyio.abc import ByteReceiveStream, Process, TaskGroup
from anyio.streams.buffered import BufferedByteReceiveStream
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from claude_code_stream._errors import (
    ClaudeSDKError,
    CLIConnectionError,
    CLINotFoundError,
    ProcessError,
)
from claude_code_stream._internal.transport import Transport
from claude_code_stream.options import ClaudeCodeOptions

logger = logging.getLogger(__name__)

_DEFAULT_MAX_LINE_SIZE = 1024 * 1024  # 1MB per stdout line
_DEFAULT_MAX_STDERR_SIZE = 10 * 1024 * 1024  # 10MB of collected stderr

_CHUNK_STREAM_SIZE = 100
_ERROR_STREAM_SIZE = 10

# How long a failed process waits for stderr before reporting the exit.
_STDERR_GRACE_PERIOD = 1.0

ENTRYPOINT_ENV = "CLAUDE_CODE_ENTRYPOINT"
ENTRYPOINT = "sdk-py"


async def _iter_lines(stream: BufferedByteReceiveStream, max_line_size: int) -> AsyncIterator[bytes]:
    """Yield non-empty lines without their terminator.

    A final line without a trailing newline is yielded at end of stream.

    Raises:
        anyio.DelimiterNotFound: If a line is longer than ``max_line_size``.
    """
    while True:
        try:
            line = await stream.receive_until(b"\n", max_line_size)
        except anyio.IncompleteRead:
            line = stream.buffer
            if line.strip():
                yield line.rstrip(b"\r")
            return

        if len(line) > max_line_size:
            raise anyio.DelimiterNotFound(max_line_size)
        line = line.rstrip(b"\r")
        if line:
            yield line


class _StderrBuffer:
    """Collects stderr lines up to a byte limit."""

    def __init__(self, max_size: int):
        self.max_size = max_size
        self.lines: list[str] = []
        self.size = 0
        self.truncated = False
        self.done = anyio.Event()

    def append(self, line: str) -> bool:
        """Store ``line``; returns False once the limit has been reached."""
        if self.truncated:
            return False
        line_size = len(line.encode("utf-8"))
        if self.size + line_size > self.max_size:
            self.truncate()
            return False
        self.lines.append(line)
        self.size += line_size
        return True

    def truncate(self) -> None:
        if not self.truncated:
            self.lines.append(f"[stderr truncated after {self.size} bytes]")
            self.truncated = True

    def text(self) -> str:
        return "\n".join(self.lines)


class SubprocessCLITransport(Transport):
    """Print-mode subprocess transport for the Claude Code CLI.

    ``connect()`` only resolves the executable and the command line. The
    process is started by ``stream()``, which launches three tasks into the
    caller's task group:

    - the stdout reader, splitting output into lines for the parser
    - the stderr accumulator, collecting diagnostic text
    - the exit waiter, reaping the process and reporting failures

    All three run under the transport's own cancel scope, which ``close()``
    cancels. The error stream is shared by the three tasks and closes after
    the last of them ends.
    """

    def __init__(
        self,
        prompt: str,
        options: ClaudeCodeOptions | None = None,
        *,
        cli_path: str | os.PathLike[str] | None = None,
        max_line_size: int = _DEFAULT_MAX_LINE_SIZE,
        max_stderr_size: int = _DEFAULT_MAX_STDERR_SIZE,
    ):
        """Initialize the subprocess transport.

        Args:
            prompt: Prompt passed to the CLI in print mode.
            options: CLI options; defaults are used when omitted.
            cli_path: Explicit CLI executable. Discovered on ``connect()``
                when not given.
            max_line_size: Longest stdout line accepted, in bytes.
            max_stderr_size: Most stderr text kept, in bytes.
        """
        self._prompt = prompt
        self._options = options if options is not None else ClaudeCodeOptions()
        self._cli_path = str(cli_path) if cli_path is not None else None
        self._max_line_size = max_line_size
        self._max_stderr_size = max_stderr_size

        self._command: list[str] | None = None
        self._cwd: str | None = None
        self._env: dict[str, str] | None = None

        # Process and streams
        self._process: Process | None = None
        self._streams: (
            tuple[MemoryObjectReceiveStream[bytes], MemoryObjectReceiveStream[ClaudeSDKError]] | None
        ) = None
        self._cancel_scope: anyio.CancelScope | None = None

        # State tracking
        self._connected = False
        self._closed = False
        self._lock = anyio.Lock()

    @property
    def command(self) -> list[str] | None:
        """The argument vector built by ``connect()``."""
        return list(self._command) if self._command is not None else None

    def _find_cli(self) -> str:
        """Find the Claude Code CLI binary.

        Returns:
            Path to the CLI executable.

        Raises:
            CLINotFoundError: If the CLI cannot be found.
        """
        if cli := shutil.which("claude"):
            return cli

        home = Path.home()
        locations = [
            home / ".npm-global" / "bin" / "claude",
            home / ".local" / "bin" / "claude",
            home / "node_modules" / ".bin" / "claude",
            home / ".yarn" / "bin" / "claude",
            Path("/usr/local/bin/claude"),
            Path("/opt/homebrew/bin/claude"),
        ]

        for path in locations:
            if path.exists() and path.is_file():
                return str(path)

        if not shutil.which("node"):
            raise CLINotFoundError(
                "Claude Code requires Node.js, which is not installed.\n\n"
                "Install Node.js from: https://nodejs.org/\n"
                "\nAfter installing Node.js, install Claude Code:\n"
                "  npm install -g @anthropic-ai/claude-code"
            )

        raise CLINotFoundError(
            "Claude Code not found. Install with:\n"
            "  npm install -g @anthropic-ai/claude-code\n"
            "\nIf already installed locally, try:\n"
            '  export PATH="$HOME/node_modules/.bin:$PATH"\n'
            "\nOr provide the path via ClaudeCodeClient(cli_path='/path/to/claude')"
        )

    def _build_command(self, cli_path: str) -> list[str]:
        """Build the CLI command with all arguments."""
        options = self._options
        cmd = [cli_path, "--output-format", "stream-json", "--verbose"]

        if options.system_prompt is not None:
            cmd.extend(["--system-prompt", options.system_prompt])
        if options.append_system_prompt is not None:
            cmd.extend(["--append-system-prompt", options.append_system_prompt])

        if options.allowed_tools:
            cmd.extend(["--allowedTools", ",".join(options.allowed_tools)])
        if options.disallowed_tools:
            cmd.extend(["--disallowedTools", ",".join(options.disallowed_tools)])

        if options.max_turns is not None:
            cmd.extend(["--max-turns", str(options.max_turns)])
        if options.continue_conversation:
            cmd.append("--continue")
        if options.resume is not None:
            cmd.extend(["--resume", options.resume])

        if options.model is not None:
            cmd.extend(["--model", options.model])
        if options.permission_mode is not None:
            cmd.extend(["--permission-mode", options.permission_mode.value])
        if options.permission_prompt_tool_name is not None:
            cmd.extend(["--permission-prompt-tool", options.permission_prompt_tool_name])

        if options.mcp_servers:
            cmd.extend(["--mcp-config", json.dumps(options.mcp_config_dict())])

        cmd.extend(["--print", "--", self._prompt])
        return cmd

    async def connect(self) -> None:
        """Resolve the CLI and build the command line.

        Raises:
            CLINotFoundError: If the CLI cannot be found.
            CLIConnectionError: If the transport is closed or the working
                directory does not exist.
        """
        async with self._lock:
            if self._closed:
                raise CLIConnectionError("Transport is closed")
            if self._connected:
                return

            cli_path = self._cli_path if self._cli_path is not None else self._find_cli()

            cwd = self._options.cwd
            if cwd is not None and not Path(cwd).is_dir():
                raise CLIConnectionError(f"Working directory does not exist: {cwd}")

            self._command = self._build_command(cli_path)
            self._cwd = str(cwd) if cwd is not None else None
            self._env = {**os.environ, **self._options.env, ENTRYPOINT_ENV: ENTRYPOINT}
            self._cli_path = cli_path
            self._connected = True
            logger.debug(
                "[transport] Prepared CLI command",
                extra={"cli_path": cli_path, "arg_count": len(self._command)},
            )

    async def stream(
        self, task_group: TaskGroup
    ) -> tuple[MemoryObjectReceiveStream[bytes], MemoryObjectReceiveStream[ClaudeSDKError]]:
        """Start the CLI and return its chunk and error streams.

        Startup failures do not raise: they are delivered on the error
        stream, after which both streams close.
        """
        async with self._lock:
            if self._streams is not None:
                return self._streams

            chunk_send, chunk_receive = anyio.create_memory_object_stream[bytes](
                max_buffer_size=_CHUNK_STREAM_SIZE
            )
            error_send, error_receive = anyio.create_memory_object_stream[ClaudeSDKError](
                max_buffer_size=_ERROR_STREAM_SIZE
            )
            self._streams = (chunk_receive, error_receive)

            if not self._connected or self._command is None:
                self._fail_start(chunk_send, error_send, CLIConnectionError("Transport is not connected"))
                return self._streams

            try:
                process = await anyio.open_process(
                    self._command,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    cwd=self._cwd,
                    env=self._env,
                )
            except FileNotFoundError as e:
                error: CLIConnectionError = CLINotFoundError("Claude Code not found at", self._cli_path)
                error.__cause__ = e
                self._fail_start(chunk_send, error_send, error)
                return self._streams
            except OSError as e:
                error = CLIConnectionError(f"Failed to start Claude Code: {e}")
                error.__cause__ = e
                self._fail_start(chunk_send, error_send, error)
                return self._streams

            self._process = process
            self._cancel_scope = anyio.CancelScope()
            logger.info(
                "[transport] Started Claude Code CLI",
                extra={"pid": process.pid, "cli_path": self._cli_path},
            )
            task_group.start_soon(self._supervise, process, self._cancel_scope, chunk_send, error_send)
            return self._streams

    @staticmethod
    def _fail_start(
        chunk_send: MemoryObjectSendStream[bytes],
        error_send: MemoryObjectSendStream[ClaudeSDKError],
        error: ClaudeSDKError,
    ) -> None:
        logger.debug(f"[transport] Failed to start streaming: {error}")
        error_send.send_nowait(error)
        error_send.close()
        chunk_send.close()

    async def _supervise(
        self,
        process: Process,
        cancel_scope: anyio.CancelScope,
        chunk_send: MemoryObjectSendStream[bytes],
        error_send: MemoryObjectSendStream[ClaudeSDKError],
    ) -> None:
        stderr = _StderrBuffer(self._max_stderr_size)
        with cancel_scope:
            async with anyio.create_task_group() as tg:
                async with error_send:
                    tg.start_soon(self._read_stdout, process, chunk_send, error_send.clone())
                    tg.start_soon(self._read_stderr, process, stderr, error_send.clone())
                    tg.start_soon(self._wait_for_exit, process, stderr, error_send.clone())
        logger.debug("[transport] Streaming tasks finished")

    async def _read_stdout(
        self,
        process: Process,
        chunks: MemoryObjectSendStream[bytes],
        errors: MemoryObjectSendStream[ClaudeSDKError],
    ) -> None:
        async with chunks, errors:
            if process.stdout is None:
                return
            stdout = BufferedByteReceiveStream(process.stdout)
            try:
                async for line in _iter_lines(stdout, self._max_line_size):
                    await chunks.send(line)
            except anyio.DelimiterNotFound as e:
                await self._send_error(errors, CLIConnectionError(f"Error reading stdout: {e}"))
                with suppress(OSError, anyio.ClosedResourceError, anyio.BrokenResourceError):
                    await stdout.aclose()
            except OSError as e:
                await self._send_error(errors, CLIConnectionError(f"Error reading stdout: {e}"))
            except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                logger.debug("[transport] stdout reader stopped: stream closed")

    async def _read_stderr(
        self,
        process: Process,
        buffer: _StderrBuffer,
        errors: MemoryObjectSendStream[ClaudeSDKError],
    ) -> None:
        async with errors:
            try:
                if process.stderr is not None:
                    await self._collect_stderr(process.stderr, buffer)
            finally:
                buffer.done.set()

            if buffer.lines:
                await self._send_error(errors, CLIConnectionError(f"CLI stderr output: {buffer.text()}"))

    async def _collect_stderr(self, stream: ByteReceiveStream, buffer: _StderrBuffer) -> None:
        stderr = BufferedByteReceiveStream(stream)
        callback = self._options.stderr
        try:
            try:
                async for raw_line in _iter_lines(stderr, self._max_stderr_size):
                    line = raw_line.decode("utf-8", errors="replace")
                    if not buffer.append(line):
                        break
                    logger.debug(f"[CLI stderr] {line}")
                    if callback is not None:
                        try:
                            callback(line)
                        except Exception:
                            logger.exception("[transport] stderr callback failed")
            except anyio.DelimiterNotFound:
                buffer.truncate()

            if buffer.truncated:
                # Keep the pipe drained so the CLI never blocks on a full stderr.
                async for _ in stderr:
                    pass
        except (OSError, anyio.ClosedResourceError, anyio.BrokenResourceError):
            logger.debug("[transport] stderr reader stopped: stream closed")

    async def _wait_for_exit(
        self,
        process: Process,
        stderr: _StderrBuffer,
        errors: MemoryObjectSendStream[ClaudeSDKError],
    ) -> None:
        async with errors:
            try:
                returncode = await process.wait()
            except anyio.get_cancelled_exc_class():
                with anyio.CancelScope(shield=True):
                    await self._kill(process)
                raise

            if returncode == 0:
                logger.debug("[transport] CLI exited successfully", extra={"pid": process.pid})
                return

            with anyio.move_on_after(_STDERR_GRACE_PERIOD):
                await stderr.done.wait()

            await self._send_error(
                errors,
                ProcessError("CLI process failed", exit_code=returncode, stderr=stderr.text() or None),
            )

    @staticmethod
    async def _kill(process: Process) -> None:
        if process.returncode is None:
            with suppress(ProcessLookupError):
                process.kill()
        await process.wait()

    @staticmethod
    async def _send_error(errors: MemoryObjectSendStream[ClaudeSDKError], error: ClaudeSDKError) -> None:
        try:
            await errors.send(error)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            logger.debug(f"[transport] Dropped error after consumer went away: {error}")

    async def close(self) -> None:
        """Stop streaming, kill the CLI if it is still running and reap it."""
        with anyio.CancelScope(shield=True):
            async with self._lock:
                if self._closed:
                    return
                self._closed = True
                self._connected = False

                if self._cancel_scope is not None:
                    self._cancel_scope.cancel()

                process = self._process
                if process is None:
                    return

                for pipe in (process.stdout, process.stderr):
                    if pipe is not None:
                        with suppress(OSError, anyio.ClosedResourceError, anyio.BrokenResourceError):
                            await pipe.aclose()

                await self._kill(process)
                logger.debug(
                    "[transport] CLI process reaped",
                    extra={"pid": process.pid, "returncode": process.returncode},
                )

    def is_connected(self) -> bool:
        """Check if the transport is connected and not closed."""
        return self._connected and not self._closed


__all__ = ["SubprocessCLITransport", "ENTRYPOINT_ENV", "ENTRYPOINT"]
