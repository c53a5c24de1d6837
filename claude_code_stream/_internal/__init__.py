"""Internal components for claude-code-stream's streaming pipeline."""

from .query_stream import QueryStream, StreamState
from .stream_parser import StreamParser
from .transport import Transport
from .transport.subprocess_cli import SubprocessCLITransport

__all__ = [
    "QueryStream",
    "StreamState",
    "StreamParser",
    "Transport",
    "SubprocessCLITransport",
]
