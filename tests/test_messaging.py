"""Tests for the process-wide messaging API."""
import pytest
from msgbridge import messaging
from msgbridge.adapters.memory import InMemoryChannel
from msgbridge.config import Settings
from msgbridge.correlator import AlreadyInitializedError, Correlator, TimedOutError
from msgbridge.metrics.collector import MetricsCollector


@pytest.fixture
def fresh_correlator(monkeypatch):
    """Swap the global correlator so tests do not share process-wide state."""
    corr = Correlator(settings=Settings(), metrics=MetricsCollector())
    monkeypatch.setattr(messaging, "correlator", corr)
    return corr


def test_initialize_returns_global(fresh_correlator):
    """Test initialize wires the process-wide correlator."""
    channel = InMemoryChannel()
    corr = messaging.initialize(channel, None, lambda *args: None)

    assert corr is fresh_correlator
    assert corr.is_initialized


def test_initialize_twice_raises(fresh_correlator):
    """Test the process-wide correlator refuses a second init."""
    channel = InMemoryChannel()
    messaging.initialize(channel, None, lambda *args: None)

    with pytest.raises(AlreadyInitializedError):
        messaging.initialize(channel, None, lambda *args: None)


@pytest.mark.asyncio
async def test_round_trip(fresh_correlator):
    """Test request and reply through the module-level functions."""
    received = []

    def on_action(action, data, event, message_id):
        received.append(action)
        if action == "ping":
            messaging.reply(message_id, {"pong": True}, event)

    messaging.initialize(InMemoryChannel(), None, on_action)

    messaging.send_one_way("hello")
    result = await messaging.send_request("ping", {"n": 1}, 1000)

    assert result == {"pong": True}
    assert received == ["hello", "ping"]


@pytest.mark.asyncio
async def test_timeout(fresh_correlator):
    """Test module-level send_request times out without a reply."""
    messaging.initialize(InMemoryChannel(), None, lambda *args: None)

    with pytest.raises(TimedOutError) as exc_info:
        await messaging.send_request("ping", {"n": 1}, 50)

    assert exc_info.value.action == "ping"
    assert fresh_correlator.pending_count == 0
