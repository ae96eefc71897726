"""
Shared pytest fixtures.

A session-scoped QCoreApplication is required for any test that creates
a PyQt6 object (EventBus, Config, NodeManager).  We use QCoreApplication
(not QApplication) and force the offscreen platform so the tests run
headlessly on CI / servers without a display.

Node tests never touch the network: they run against ``FakeTransport``,
which records every request and replays queued replies or errors.
"""

from __future__ import annotations

import os
import sys
from typing import Any

import pytest

# Force Qt to run without a display before any Qt import happens.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(scope="session")
def qapp():
    """One QCoreApplication for the entire test session."""
    from PyQt6.QtCore import QCoreApplication

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    yield app


@pytest.fixture
def bus(qapp):
    """Fresh EventBus for each test."""
    from core.events import EventBus

    return EventBus()


class FakeTransport:
    """In-memory ``HttpTransport``: pops one queued reply per request."""

    def __init__(self) -> None:
        self.requests: list[Any] = []
        self.cancel_events: list[Any] = []
        self._replies: list[Any] = []

    def queue(self, *replies: Any) -> None:
        self._replies.extend(replies)

    def request(self, req, cancel_event=None):
        self.requests.append(req)
        self.cancel_events.append(cancel_event)
        if not self._replies:
            raise AssertionError(f"Unexpected request: {req.method} {req.url}")
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


DEFAULT_PARAMS: dict[str, Any] = {
    "model_name": "test-model",
    "message": "Hello",
    "temperature": 0.7,
    "max_tokens": "",
    "timeout": 0,
    "json_schema": "{}",
}


@pytest.fixture
def make_context(transport):
    """Build an ExecutionContext with sensible form values and the fake transport."""
    from core.context import ExecutionContext

    def _make(params: dict[str, Any] | None = None, **kwargs: Any) -> ExecutionContext:
        kwargs.setdefault("credentials", {"host_url": "http://localhost:1234", "api_key": ""})
        kwargs.setdefault("transport", transport)
        return ExecutionContext(parameters={**DEFAULT_PARAMS, **(params or {})}, **kwargs)

    return _make


def chat_reply(
    content: Any,
    *,
    model: str = "test-model",
    finish_reason: str = "stop",
) -> dict[str, Any]:
    return {
        "choices": [{"message": {"content": content}, "finish_reason": finish_reason}],
        "model": model,
        "usage": {"prompt_tokens": 5, "completion_tokens": 10, "total_tokens": 15},
        "created": 1700000000,
        "id": "chatcmpl-abc",
    }


@pytest.fixture
def reply():
    """Factory for chat-completions replies."""
    return chat_reply
