"""Shared pytest fixtures for the WhatsApp agent tests."""
import pytest

from whatsapp_agent.guard import MessageGuard
from whatsapp_agent.orchestrator import InboundOrchestrator
from whatsapp_agent.reply_generator import ReplyGenerator
from whatsapp_agent.state_store import InMemoryStateStore

from helpers import FakeModelClient, FixedClock, RecordingSender, RecordingSink, reply_json


@pytest.fixture
def model_client():
    return FakeModelClient(raw=reply_json())


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def state_store():
    return InMemoryStateStore()


@pytest.fixture
def guard():
    return MessageGuard(dedup_window_sec=24 * 60 * 60, rate_window_sec=60, rate_limit=20)


@pytest.fixture
def orchestrator(model_client, sender, sink, clock, state_store, guard):
    generator = ReplyGenerator(model_client, system_prompt="You are a sales assistant.")
    return InboundOrchestrator(
        guard=guard,
        state_store=state_store,
        generator=generator,
        sender=sender,
        escalations=sink,
        generation_timeout_sec=0.5,
        clock=clock,
    )
