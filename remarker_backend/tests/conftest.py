"""
Pytest configuration and shared fixtures for the Remarker backend tests.

This module provides:
- A scripted fake oracle (no network)
- A fake thread platform standing in for the Discord REST client
- Store / router factories wired to the fakes
"""

import asyncio
import itertools
from typing import Callable, List, Optional

import pytest

from remarker_backend.errors import TransportFailure
from remarker_backend.schemas import EventType, InboundEvent, ResponseBody
from remarker_backend.services.content_generator import ContentGenerator
from remarker_backend.services.discord_client import PublishedThread
from remarker_backend.services.graph_snapshots import GraphSnapshotter
from remarker_backend.services.graph_store import DiscourseGraphStore
from remarker_backend.services.interaction_router import InteractionRouter
from remarker_backend.services.oracle_clients import TextOracle
from remarker_backend.services.stance_classifier import StanceClassifier


# ============================================================================
# Fakes
# ============================================================================

class FakeOracle(TextOracle):
    """
    Oracle answering from a script.

    ``responses`` are consumed in order; once exhausted ``default`` is
    returned. ``responder`` (prompt -> answer) takes precedence when set.
    Setting ``gate`` to an ``asyncio.Event`` holds every call until it is set.
    """

    provider = "fake"

    def __init__(
        self,
        responses: Optional[List[str]] = None,
        default: str = "question",
        error: Optional[Exception] = None,
        responder: Optional[Callable[[str], str]] = None,
    ):
        super().__init__(model="fake-model", timeout_seconds=5, trace_calls=False)
        self.responses = list(responses or [])
        self.default = default
        self.error = error
        self.responder = responder
        self.prompts: List[str] = []
        self.gate: Optional[asyncio.Event] = None

    async def _complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.responder is not None:
            return self.responder(prompt)
        if self.responses:
            return self.responses.pop(0)
        return self.default


class FakePlatform:
    """Records opened threads; thread and starter ids are sequential numeric strings."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.opened: List[dict] = []
        self._ids = itertools.count(1000)

    async def open_claim_thread(self, channel_id: str, name: str, starter: ResponseBody) -> PublishedThread:
        if self.fail_with is not None:
            raise self.fail_with
        published = PublishedThread(thread_id=str(next(self._ids)), message_id=str(next(self._ids)))
        self.opened.append({
            "channel_id": channel_id,
            "name": name,
            "starter": starter,
            "thread_id": published.thread_id,
            "message_id": published.message_id,
        })
        return published


def stance_by_keyword(prompt: str) -> str:
    """Classify on keywords found in the quoted response of the classify prompt."""
    response = prompt.split("Response:", 1)[-1].lower()
    if "agree" in response and "disagree" not in response:
        return "support"
    if "disagree" in response or "wrong" in response:
        return "challenge"
    return "question"


def make_event(event_type: EventType, name: Optional[str] = None, **kwargs) -> InboundEvent:
    return InboundEvent(type=event_type, name=name, **kwargs)


def message_event(thread_id: str, message_id: str, content: str, **kwargs) -> InboundEvent:
    kwargs.setdefault("author", "alice")
    return InboundEvent(
        type=EventType.MESSAGE,
        channel_id=thread_id,
        thread_id=thread_id,
        message_id=message_id,
        content=content,
        **kwargs,
    )


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def oracle():
    return FakeOracle(responder=stance_by_keyword)


@pytest.fixture
def classifier(oracle):
    return StanceClassifier(oracle)


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "graph" / "discourse_graph.json"


@pytest.fixture
def snapshotter(snapshot_path):
    return GraphSnapshotter(backend="local", path=snapshot_path)


@pytest.fixture
def store(classifier):
    """In-memory store; tests that persist use ``persistent_store`` and flush it."""
    return DiscourseGraphStore(classifier)


@pytest.fixture
def persistent_store(classifier, snapshotter):
    return DiscourseGraphStore(classifier, snapshotter)


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def generator_oracle():
    return FakeOracle()


@pytest.fixture
def generator(generator_oracle):
    return ContentGenerator(generator_oracle)


@pytest.fixture
def router(store, generator, platform):
    return InteractionRouter(store, generator, platform)


@pytest.fixture
def failing_platform():
    return FakePlatform(fail_with=TransportFailure("POST channels/1/threads returned 403", status_code=403))


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: marks tests that interleave coroutines on one event loop"
    )
    config.addinivalue_line(
        "markers", "api: marks tests that exercise the FastAPI surface"
    )
