"""Stream typed messages from the Claude Code CLI."""

from claude_code_stream._errors import (
    BufferOverflowError,
    ClaudeSDKError,
    CLIConnectionError,
    CLIJSONDecodeError,
    CLINotFoundError,
    MessageParseError,
    ProcessError,
    StreamClosedError,
)
from claude_code_stream._internal.query_stream import QueryStream, StreamState
from claude_code_stream._internal.stream_parser import StreamParser
from claude_code_stream._internal.transport import Transport
from claude_code_stream._internal.transport.subprocess_cli import SubprocessCLITransport
from claude_code_stream.client import ClaudeCodeClient, query
from claude_code_stream.options import (
    ClaudeCodeOptions,
    McpHttpServerConfig,
    McpServerConfig,
    McpSSEServerConfig,
    McpStdioServerConfig,
    PermissionMode,
)
from claude_code_stream.types import (
    AssistantMessage,
    ContentBlock,
    Message,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)

__version__ = "0.1.0"

__all__ = [
    # Client
    "ClaudeCodeClient",
    "query",
    "QueryStream",
    "StreamState",
    # Pipeline components
    "Transport",
    "SubprocessCLITransport",
    "StreamParser",
    # Options
    "ClaudeCodeOptions",
    "PermissionMode",
    "McpServerConfig",
    "McpStdioServerConfig",
    "McpSSEServerConfig",
    "McpHttpServerConfig",
    # Types
    "Message",
    "UserMessage",
    "AssistantMessage",
    "SystemMessage",
    "ResultMessage",
    "ContentBlock",
    "TextBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    # Errors
    "ClaudeSDKError",
    "CLIConnectionError",
    "CLINotFoundError",
    "ProcessError",
    "CLIJSONDecodeError",
    "MessageParseError",
    "BufferOverflowError",
    "StreamClosedError",
    "__version__",
]
