"""Local fixtures for MCP module tests."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest


@pytest.fixture
def sample_tools() -> List[Dict[str, Any]]:
    """Tool objects as a server lists them."""
    return [
        {
            "name": "read_file",
            "description": "Read contents of a file",
            "inputSchema": {
                "type": "object",
                "properties": {"path": {"type": "string"}},
                "required": ["path"],
            },
        },
        {"name": "echo", "description": "Echo the arguments"},
    ]


@pytest.fixture
def sample_prompts() -> List[Dict[str, Any]]:
    return [
        {
            "name": "summarize",
            "description": "Summarize a text",
            "arguments": [{"name": "text", "required": True}],
        }
    ]


@pytest.fixture
def sample_resources() -> List[Dict[str, Any]]:
    return [
        {"uri": "file:///notes.txt", "name": "notes", "mimeType": "text/plain"},
        {"uri": "file:///todo.md", "name": "todo"},
    ]
