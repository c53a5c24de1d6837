"""Tests for decoding CLI JSON objects into typed messages."""

import pytest

from claude_code_stream import (
    AssistantMessage,
    MessageParseError,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)
from claude_code_stream._internal.message_parser import parse_content_block, parse_message


# =============================================================================
# Message Dispatch
# =============================================================================


class TestParseMessage:
    """Test top-level message dispatch."""

    def test_non_object_is_rejected(self):
        """Only JSON objects can be messages."""
        with pytest.raises(MessageParseError, match="expected dict, got list"):
            parse_message([1, 2])

    def test_missing_type_is_rejected(self):
        """A message without a string type is invalid."""
        with pytest.raises(MessageParseError, match="missing 'type'"):
            parse_message({"subtype": "init"})
        with pytest.raises(MessageParseError):
            parse_message({"type": 7})

    def test_unknown_type_is_skipped(self):
        """Unknown message types decode to None."""
        assert parse_message({"type": "stream_event", "event": {}}) is None

    def test_error_keeps_raw_data(self):
        """MessageParseError carries the offending object."""
        data = {"type": "system"}
        with pytest.raises(MessageParseError) as exc_info:
            parse_message(data)
        assert exc_info.value.data is data


# =============================================================================
# User and System Messages
# =============================================================================


class TestUserMessage:
    """Test user message decoding."""

    def test_string_content(self):
        """String content is used as is."""
        message = parse_message({"type": "user", "message": {"content": "Hi there"}})
        assert message == UserMessage(content="Hi there")
        assert message.type == "user"

    def test_list_content_is_summarised(self):
        """Tool result arrays become a count summary."""
        message = parse_message(
            {"type": "user", "message": {"content": [{"type": "tool_result"}, {"type": "tool_result"}]}}
        )
        assert message.content == "Tool results: 2 items"

    def test_missing_body_is_rejected(self):
        """The message body must be an object."""
        with pytest.raises(MessageParseError, match="missing 'message'"):
            parse_message({"type": "user", "message": "hello"})

    def test_other_content_is_rejected(self):
        """Content that is neither string nor list is invalid."""
        with pytest.raises(MessageParseError, match="missing 'content'"):
            parse_message({"type": "user", "message": {"content": 5}})


class TestSystemMessage:
    """Test system message decoding."""

    def test_data_is_whole_object(self):
        """System messages keep the full raw object."""
        raw = {"type": "system", "subtype": "init", "tools": ["Read"], "cwd": "/tmp"}
        message = parse_message(raw)

        assert isinstance(message, SystemMessage)
        assert message.subtype == "init"
        assert message.data == raw
        assert message.type == "system"

    def test_subtype_required(self):
        with pytest.raises(MessageParseError, match="subtype"):
            parse_message({"type": "system"})


# =============================================================================
# Assistant Messages and Content Blocks
# =============================================================================


class TestAssistantMessage:
    """Test assistant message decoding."""

    def test_blocks_in_order(self):
        """Blocks are decoded in order into a tuple."""
        message = parse_message(
            {
                "type": "assistant",
                "message": {
                    "content": [
                        {"type": "text", "text": "Let me check."},
                        {"type": "tool_use", "id": "toolu_1", "name": "Bash", "input": {"command": "ls"}},
                        {"type": "tool_result", "tool_use_id": "toolu_1", "content": "a.txt", "is_error": False},
                    ]
                },
            }
        )

        assert isinstance(message, AssistantMessage)
        assert message.content == (
            TextBlock(text="Let me check."),
            ToolUseBlock(id="toolu_1", name="Bash", input={"command": "ls"}),
            ToolResultBlock(tool_use_id="toolu_1", content="a.txt", is_error=False),
        )
        assert [block.type for block in message.content] == ["text", "tool_use", "tool_result"]

    def test_unknown_blocks_and_non_objects_are_skipped(self):
        """Thinking blocks and stray values do not fail the message."""
        message = parse_message(
            {
                "type": "assistant",
                "message": {"content": [{"type": "thinking", "thinking": "hmm"}, "stray", {"type": "text", "text": "ok"}]},
            }
        )
        assert message.content == (TextBlock(text="ok"),)

    def test_content_must_be_list(self):
        with pytest.raises(MessageParseError, match="content' array"):
            parse_message({"type": "assistant", "message": {"content": "text"}})

    def test_malformed_block_fails_message(self):
        """A known block with missing fields fails the whole message."""
        with pytest.raises(MessageParseError, match="Failed to parse content block"):
            parse_message({"type": "assistant", "message": {"content": [{"type": "tool_use", "id": "x"}]}})

    def test_messages_are_immutable(self):
        """Decoded messages cannot be modified."""
        message = parse_message({"type": "assistant", "message": {"content": []}})
        with pytest.raises(AttributeError):
            message.content = ()


class TestContentBlocks:
    """Test content block decoding."""

    def test_text_requires_string(self):
        with pytest.raises(MessageParseError):
            parse_content_block({"type": "text", "text": None})

    def test_tool_use_requires_object_input(self):
        """Tool input must be an object."""
        with pytest.raises(MessageParseError, match="input"):
            parse_content_block({"type": "tool_use", "id": "a", "name": "b", "input": []})

    def test_tool_result_optional_fields(self):
        """Optional fields of the wrong kind are ignored."""
        block = parse_content_block({"type": "tool_result", "tool_use_id": "a", "content": [{"type": "text"}], "is_error": "no"})
        assert block == ToolResultBlock(tool_use_id="a")

    def test_tool_result_requires_id(self):
        with pytest.raises(MessageParseError, match="tool_use_id"):
            parse_content_block({"type": "tool_result"})

    def test_unknown_block(self):
        assert parse_content_block({"type": "image", "source": {}}) is None


# =============================================================================
# Result Messages
# =============================================================================


class TestResultMessage:
    """Test result message decoding."""

    def test_all_fields(self):
        """Every result field is decoded."""
        message = parse_message(
            {
                "type": "result",
                "subtype": "success",
                "duration_ms": 1500,
                "duration_api_ms": 1200,
                "is_error": False,
                "num_turns": 3,
                "session_id": "abc",
                "total_cost_usd": 0.25,
                "usage": {"input_tokens": 10},
                "result": "done",
            }
        )

        assert message == ResultMessage(
            subtype="success",
            duration_ms=1500,
            duration_api_ms=1200,
            is_error=False,
            num_turns=3,
            session_id="abc",
            total_cost_usd=0.25,
            usage={"input_tokens": 10},
            result="done",
        )
        assert message.type == "result"

    def test_defaults_for_missing_fields(self):
        """Missing numeric fields are zero and optional fields None."""
        message = parse_message({"type": "result", "subtype": "error_max_turns"})

        assert message.duration_ms == 0
        assert message.duration_api_ms == 0
        assert message.num_turns == 0
        assert message.is_error is False
        assert message.session_id == ""
        assert message.total_cost_usd is None
        assert message.usage is None
        assert message.result is None

    def test_fractional_numbers_are_truncated(self):
        """Integer fields drop their fractional part."""
        message = parse_message(
            {"type": "result", "subtype": "success", "duration_ms": 12.9, "duration_api_ms": -3.7, "num_turns": 2.0}
        )
        assert message.duration_ms == 12
        assert message.duration_api_ms == -3
        assert message.num_turns == 2

    def test_integer_cost_becomes_float(self):
        message = parse_message({"type": "result", "subtype": "success", "total_cost_usd": 1})
        assert message.total_cost_usd == 1.0
        assert isinstance(message.total_cost_usd, float)

    @pytest.mark.parametrize(
        "field, value",
        [
            ("duration_ms", "100"),
            ("num_turns", True),
            ("is_error", "false"),
            ("session_id", 42),
        ],
    )
    def test_wrong_kinds_are_rejected(self, field, value):
        """Booleans are not numbers and numbers are not strings."""
        with pytest.raises(MessageParseError, match=field):
            parse_message({"type": "result", "subtype": "success", field: value})
