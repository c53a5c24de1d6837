"""Message and content block types produced by the stream parser."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

JSONValue = Union[str, int, float, bool, None, "dict[str, JSONValue]", "list[JSONValue]"]
JSONObject = dict[str, JSONValue]


# =============================================================================
# ContentBlock Types
# =============================================================================


@dataclass(frozen=True)
class TextBlock:
    """Text content block."""

    text: str

    @property
    def type(self) -> str:
        return "text"


@dataclass(frozen=True)
class ToolUseBlock:
    """Tool use content block.

    Represents a tool invocation with its parameters.
    """

    id: str
    name: str
    input: JSONObject

    @property
    def type(self) -> str:
        return "tool_use"


@dataclass(frozen=True)
class ToolResultBlock:
    """Tool result content block.

    Contains the result of a tool execution.
    """

    tool_use_id: str
    content: str | None = None
    is_error: bool | None = None

    @property
    def type(self) -> str:
        return "tool_result"


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


# =============================================================================
# Message Types
# =============================================================================


@dataclass(frozen=True)
class UserMessage:
    """Message sent by the user."""

    content: str

    @property
    def type(self) -> str:
        return "user"


@dataclass(frozen=True)
class AssistantMessage:
    """Assistant message with content blocks.

    Represents a response from the assistant, made of text, tool use
    and tool result blocks in the order they were produced.
    """

    content: tuple[ContentBlock, ...]

    @property
    def type(self) -> str:
        return "assistant"


@dataclass(frozen=True)
class SystemMessage:
    """System message with metadata.

    ``data`` holds the whole raw object, including ``type`` and ``subtype``.
    """

    subtype: str
    data: JSONObject

    @property
    def type(self) -> str:
        return "system"


@dataclass(frozen=True)
class ResultMessage:
    """Result message with cost and usage information.

    Indicates the completion of a request with timing, cost, and usage statistics.
    """

    subtype: str
    duration_ms: int
    duration_api_ms: int
    is_error: bool
    num_turns: int
    session_id: str
    total_cost_usd: float | None = None
    usage: JSONObject | None = None
    result: str | None = None

    @property
    def type(self) -> str:
        return "result"


Message = Union[UserMessage, AssistantMessage, SystemMessage, ResultMessage]


__all__ = [
    "JSONValue",
    "JSONObject",
    "TextBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    "ContentBlock",
    "UserMessage",
    "AssistantMessage",
    "SystemMessage",
    "ResultMessage",
    "Message",
]
