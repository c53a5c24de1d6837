"""Pytest configuration and fixtures for all tests."""

import stat
import sys
import textwrap
from pathlib import Path

import pytest


_PRELUDE = """\
import json
import os
import sys
import time


def emit(obj, **kwargs):
    sys.stdout.write(json.dumps(obj, **kwargs) + "\\n")
    sys.stdout.flush()


"""


@pytest.fixture
def make_cli(tmp_path):
    """Write a fake ``claude`` executable running the given Python body.

    The body has ``json``, ``os``, ``sys``, ``time`` and an ``emit(obj)``
    helper that writes one JSON line to stdout.
    """
    counter = 0

    def factory(body: str) -> Path:
        nonlocal counter
        counter += 1
        script = tmp_path / f"fake_claude_{counter}"
        script.write_text(
            f"#!{sys.executable}\n" + _PRELUDE + textwrap.dedent(body),
            encoding="utf-8",
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return factory


@pytest.fixture
def conversation_cli(make_cli):
    """Fake CLI producing a short successful conversation."""
    return make_cli(
        """
        emit({"type": "system", "subtype": "init", "session_id": "s-1"})
        emit({"type": "assistant", "message": {"content": [
            {"type": "text", "text": "Hello"},
            {"type": "tool_use", "id": "t-1", "name": "Read", "input": {"path": "a.txt"}},
        ]}})
        emit({"type": "user", "message": {"content": [{"type": "tool_result", "tool_use_id": "t-1"}]}})
        emit({"type": "result", "subtype": "success", "duration_ms": 120, "duration_api_ms": 80,
              "is_error": False, "num_turns": 1, "session_id": "s-1", "total_cost_usd": 0.01})
        """
    )


@pytest.fixture
def hanging_cli(make_cli):
    """Fake CLI that emits one message and then never exits on its own."""
    return make_cli(
        """
        emit({"type": "system", "subtype": "init"})
        while True:
            time.sleep(1)
        """
    )
