"""
Shared fixtures: a scripted model backend, a controllable clock and a
generator factory wired to plain lists.
"""

import inspect

import pytest

from relay_agent.core.response_generator import ResponseGenerator
from relay_agent.providers.base import ResponseCompleted, StreamBackend
from relay_agent.tools import ToolExecutionContext, ToolRegistry


class ScriptedBackend(StreamBackend):
    """
    Replays one script per ``stream`` call.

    Script items are stream events (yielded), exceptions (raised) or
    callables (run, awaited if needed, nothing yielded).
    """

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.requests = []
        self.closed_streams = 0
        self.closed = False

    async def stream(self, messages, tools=None):
        self.requests.append({"messages": messages, "tools": tools})
        script = self.scripts.pop(0) if self.scripts else [ResponseCompleted()]
        try:
            for item in script:
                if isinstance(item, BaseException):
                    raise item
                if callable(item):
                    result = item()
                    if inspect.isawaitable(result):
                        await result
                    continue
                yield item
        finally:
            self.closed_streams += 1

    async def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def make_backend():
    """Build a ScriptedBackend from scripts."""
    return ScriptedBackend


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_generator():
    """
    Factory returning ``(generator, sent, controls, errors)``; tools are a
    name -> Tool/callable mapping registered in order.
    """
    def factory(backend, tools=None, instructions="You are a test agent.", **options):
        registry = ToolRegistry()
        for name, tool in (tools or {}).items():
            registry.register(name, tool)
        sent, controls, errors = [], [], []
        generator = ResponseGenerator(
            backend,
            registry,
            instructions,
            on_content=sent.append,
            on_control=controls.append,
            on_error=errors.append,
            **options,
        )
        return generator, sent, controls, errors

    return factory


@pytest.fixture
def tool_context():
    """Tool context collecting emitted control messages in ``context.emitted``."""
    emitted = []
    context = ToolExecutionContext(
        call_sid="CA_test_123",
        session_id="VX_test_456",
        config={"end-call": {"reason": "Caller is done"}},
        control_emitter=emitted.append,
    )
    context.emitted = emitted
    return context
