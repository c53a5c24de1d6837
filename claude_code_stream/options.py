"""Query options passed to the Claude Code CLI.

Options are validated pydantic models; the transport turns them into
command line flags.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Callable, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class PermissionMode(str, Enum):
    """How the CLI handles tool permission prompts."""

    DEFAULT = "default"
    ACCEPT_EDITS = "acceptEdits"
    PLAN = "plan"
    BYPASS_PERMISSIONS = "bypassPermissions"


# =============================================================================
# MCP Server Types
# =============================================================================


class McpStdioServerConfig(BaseModel):
    """MCP server that communicates over stdio."""

    type: Literal["stdio"] = "stdio"
    command: str
    args: list[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)

    def to_cli_dict(self) -> dict[str, Any]:
        config: dict[str, Any] = {"type": self.type, "command": self.command}
        if self.args:
            config["args"] = list(self.args)
        if self.env:
            config["env"] = dict(self.env)
        return config


class McpSSEServerConfig(BaseModel):
    """MCP server that communicates via Server-Sent Events."""

    type: Literal["sse"] = "sse"
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)

    def to_cli_dict(self) -> dict[str, Any]:
        config: dict[str, Any] = {"type": self.type, "url": self.url}
        if self.headers:
            config["headers"] = dict(self.headers)
        return config


class McpHttpServerConfig(BaseModel):
    """MCP server that communicates over HTTP."""

    type: Literal["http"] = "http"
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)

    def to_cli_dict(self) -> dict[str, Any]:
        config: dict[str, Any] = {"type": self.type, "url": self.url}
        if self.headers:
            config["headers"] = dict(self.headers)
        return config


McpServerConfig = Annotated[
    Union[McpStdioServerConfig, McpSSEServerConfig, McpHttpServerConfig],
    Field(discriminator="type"),
]


# =============================================================================
# Query Options
# =============================================================================


class ClaudeCodeOptions(BaseModel):
    """Configuration for a single CLI invocation."""

    model_config = {"protected_namespaces": ()}

    # Tools
    allowed_tools: list[str] = Field(default_factory=list)
    disallowed_tools: list[str] = Field(default_factory=list)
    mcp_servers: Dict[str, McpServerConfig] = Field(default_factory=dict)

    # Prompts and model
    system_prompt: Optional[str] = None
    append_system_prompt: Optional[str] = None
    model: Optional[str] = None

    # Permissions
    permission_mode: Optional[PermissionMode] = None
    permission_prompt_tool_name: Optional[str] = None

    # Conversation control
    continue_conversation: bool = False
    resume: Optional[str] = None
    max_turns: Optional[int] = Field(default=None, gt=0)

    # Process environment
    cwd: Optional[Path] = None
    env: Dict[str, str] = Field(default_factory=dict)

    # Called with each line the CLI writes to stderr.
    stderr: Optional[Callable[[str], None]] = Field(default=None, exclude=True)

    @field_validator("allowed_tools", "disallowed_tools")
    @classmethod
    def _strip_tool_names(cls, value: list[str]) -> list[str]:
        names = [name.strip() for name in value]
        if any(not name for name in names):
            raise ValueError("tool names must not be empty")
        return names

    @field_validator("mcp_servers", mode="before")
    @classmethod
    def _default_stdio_type(cls, value: Any) -> Any:
        """Servers given as plain dicts without a ``type`` are stdio servers."""
        if isinstance(value, dict):
            return {
                name: ({"type": "stdio", **server} if isinstance(server, dict) and "type" not in server else server)
                for name, server in value.items()
            }
        return value

    def mcp_config_dict(self) -> dict[str, Any]:
        """Return the ``--mcp-config`` payload for the configured servers."""
        return {"mcpServers": {name: server.to_cli_dict() for name, server in self.mcp_servers.items()}}


__all__ = [
    "PermissionMode",
    "McpStdioServerConfig",
    "McpSSEServerConfig",
    "McpHttpServerConfig",
    "McpServerConfig",
    "ClaudeCodeOptions",
]
