"""Tests for in-memory transports."""
import pytest
from unittest.mock import Mock
from msgbridge.adapters.base import Emitter, Listener
from msgbridge.adapters.memory import ChannelEvent, InMemoryChannel, PipeEvent, create_pipe


def test_channel_is_listener_and_emitter():
    """Test the in-memory channel satisfies both transport contracts."""
    channel = InMemoryChannel()
    assert isinstance(channel, Listener)
    assert isinstance(channel, Emitter)


def test_on_handler_receives_every_event():
    """Test persistent handlers see each payload with its event handle."""
    channel = InMemoryChannel()
    handler = Mock()
    channel.on("updates", handler)

    channel.send("updates", 1)
    channel.send("updates", 2)

    assert handler.call_count == 2
    event, payload = handler.call_args_list[0].args
    assert isinstance(event, ChannelEvent)
    assert event.channel == "updates"
    assert event.sender is channel
    assert payload == 1
    assert not hasattr(event, "reply")


def test_once_handler_fires_once():
    """Test once handlers are dropped after their first event."""
    channel = InMemoryChannel()
    handler = Mock()
    channel.once("msg-1", handler)

    channel.send("msg-1", "a")
    channel.send("msg-1", "b")

    handler.assert_called_once()
    assert channel.listener_count("msg-1") == 0


def test_remove_all_listeners():
    """Test removing every handler on a channel."""
    channel = InMemoryChannel()
    handler = Mock()
    channel.on("updates", handler)
    channel.once("updates", handler)
    channel.on("other", handler)

    channel.remove_all_listeners("updates")
    channel.remove_all_listeners("missing")

    assert channel.emit("updates", None, 1) is False
    assert channel.listener_count("other") == 1
    handler.assert_not_called()


def test_handler_exception_propagates():
    """Test handler errors surface to the sender."""
    channel = InMemoryChannel()
    channel.on("updates", Mock(side_effect=RuntimeError("boom")))

    with pytest.raises(RuntimeError):
        channel.send("updates", 1)


def test_pipe_delivers_to_peer():
    """Test pipe endpoints deliver on the opposite side only."""
    left, right = create_pipe()
    on_left = Mock()
    on_right = Mock()
    left.on("message-request", on_left)
    right.on("message-request", on_right)

    left.send("message-request", "hello")

    on_left.assert_not_called()
    event, payload = on_right.call_args.args
    assert isinstance(event, PipeEvent)
    assert event.sender is left
    assert event.receiver is right
    assert payload == "hello"


def test_pipe_event_replies_to_sender():
    """Test replying through a pipe event reaches the original sender."""
    left, right = create_pipe()
    reply_handler = Mock()
    left.once("msg-9", reply_handler)
    right.on("message-request", lambda event, payload: event.reply("msg-9", payload + "!"))

    left.send("message-request", "hi")

    event, payload = reply_handler.call_args.args
    assert payload == "hi!"
    assert event.sender is right


def test_unconnected_endpoint_raises():
    """Test sending on an endpoint without a peer fails."""
    from msgbridge.adapters.memory import PipeEndpoint

    endpoint = PipeEndpoint("lonely")
    with pytest.raises(RuntimeError):
        endpoint.send("message-request", None)
