"""Message parser for claude-code-stream.

This module turns decoded JSON objects from the CLI into typed Message
objects. Unknown message and content block types are skipped so newer CLI
versions keep working with older SDKs.
"""

import logging
from typing import Any

from claude_code_stream._errors import MessageParseError
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

logger = logging.getLogger(__name__)


def parse_message(data: Any) -> Message | None:
    """Parse a decoded CLI object into a typed Message.

    Args:
        data: Raw object decoded from one JSON value of CLI output.

    Returns:
        The parsed Message, or None when the message type is unknown.

    Raises:
        MessageParseError: If the object is not a valid message.
    """
    if not isinstance(data, dict):
        raise MessageParseError(
            f"Invalid message data type (expected dict, got {type(data).__name__})",
            data,
        )

    message_type = data.get("type")
    if not isinstance(message_type, str):
        raise MessageParseError("Message missing 'type' field", data)

    match message_type:
        case "user":
            return _parse_user_message(data)
        case "assistant":
            return _parse_assistant_message(data)
        case "system":
            return _parse_system_message(data)
        case "result":
            return _parse_result_message(data)
        case _:
            logger.debug(f"[message_parser] Skipping unknown message type: {message_type}")
            return None


def parse_content_block(block: dict[str, Any]) -> ContentBlock | None:
    """Parse one entry of an assistant message's content array.

    Returns None for unknown block types.
    """
    block_type = block.get("type")
    if not isinstance(block_type, str):
        raise MessageParseError("Content block missing 'type' field", block)

    match block_type:
        case "text":
            text = block.get("text")
            if not isinstance(text, str):
                raise MessageParseError("text block missing 'text' field", block)
            return TextBlock(text=text)

        case "tool_use":
            tool_id = block.get("id")
            if not isinstance(tool_id, str):
                raise MessageParseError("tool_use block missing 'id' field", block)
            name = block.get("name")
            if not isinstance(name, str):
                raise MessageParseError("tool_use block missing 'name' field", block)
            tool_input = block.get("input")
            if not isinstance(tool_input, dict):
                raise MessageParseError("tool_use block missing 'input' field", block)
            return ToolUseBlock(id=tool_id, name=name, input=tool_input)

        case "tool_result":
            tool_use_id = block.get("tool_use_id")
            if not isinstance(tool_use_id, str):
                raise MessageParseError("tool_result block missing 'tool_use_id' field", block)
            content = block.get("content")
            is_error = block.get("is_error")
            return ToolResultBlock(
                tool_use_id=tool_use_id,
                content=content if isinstance(content, str) else None,
                is_error=is_error if isinstance(is_error, bool) else None,
            )

        case _:
            logger.debug(f"[message_parser] Skipping unknown content block type: {block_type}")
            return None


def _message_body(data: dict[str, Any], message_type: str) -> dict[str, Any]:
    body = data.get("message")
    if not isinstance(body, dict):
        raise MessageParseError(f"{message_type} message missing 'message' field", data)
    return body


def _parse_user_message(data: dict[str, Any]) -> UserMessage:
    content = _message_body(data, "user").get("content")
    if isinstance(content, str):
        return UserMessage(content=content)
    if isinstance(content, list):
        # Tool result arrays are summarised rather than decoded.
        return UserMessage(content=f"Tool results: {len(content)} items")
    raise MessageParseError("user message missing 'content' field", data)


def _parse_assistant_message(data: dict[str, Any]) -> AssistantMessage:
    content = _message_body(data, "assistant").get("content")
    if not isinstance(content, list):
        raise MessageParseError("assistant message missing 'content' array", data)

    blocks: list[ContentBlock] = []
    for entry in content:
        if not isinstance(entry, dict):
            continue
        try:
            block = parse_content_block(entry)
        except MessageParseError as e:
            raise MessageParseError(f"Failed to parse content block: {e}", data) from e
        if block is not None:
            blocks.append(block)

    return AssistantMessage(content=tuple(blocks))


def _parse_system_message(data: dict[str, Any]) -> SystemMessage:
    subtype = data.get("subtype")
    if not isinstance(subtype, str):
        raise MessageParseError("system message missing 'subtype' field", data)
    return SystemMessage(subtype=subtype, data=data)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _int_field(data: dict[str, Any], key: str) -> int:
    """Read an integer field, discarding any fractional part."""
    value = data.get(key)
    if value is None:
        return 0
    if not _is_number(value):
        raise MessageParseError(f"result message field '{key}' must be a number", data)
    try:
        return int(value)
    except (OverflowError, ValueError) as e:
        raise MessageParseError(f"result message field '{key}' is not finite", data) from e


def _parse_result_message(data: dict[str, Any]) -> ResultMessage:
    subtype = data.get("subtype")
    if not isinstance(subtype, str):
        raise MessageParseError("result message missing 'subtype' field", data)

    is_error = data.get("is_error", False)
    if not isinstance(is_error, bool):
        raise MessageParseError("result message field 'is_error' must be a boolean", data)

    session_id = data.get("session_id", "")
    if not isinstance(session_id, str):
        raise MessageParseError("result message field 'session_id' must be a string", data)

    total_cost = data.get("total_cost_usd")
    usage = data.get("usage")
    result = data.get("result")

    return ResultMessage(
        subtype=subtype,
        duration_ms=_int_field(data, "duration_ms"),
        duration_api_ms=_int_field(data, "duration_api_ms"),
        is_error=is_error,
        num_turns=_int_field(data, "num_turns"),
        session_id=session_id,
        total_cost_usd=float(total_cost) if _is_number(total_cost) else None,
        usage=usage if isinstance(usage, dict) else None,
        result=result if isinstance(result, str) else None,
    )


__all__ = ["parse_message", "parse_content_block"]
