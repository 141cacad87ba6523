"""In-memory transports."""
from collections import defaultdict
from dataclasses import dataclass
from typing import Any
import structlog
from .base import Emitter, Handler, Listener

log = structlog.get_logger()


@dataclass(frozen=True)
class ChannelEvent:
    """Event handle delivered alongside every payload."""
    channel: str
    sender: Any = None


@dataclass(frozen=True)
class PipeEvent(ChannelEvent):
    """Event handle for pipe traffic; replies go straight back to the sender."""
    receiver: Any = None

    def reply(self, message_id: str, data: Any) -> None:
        self.sender.emit(message_id, PipeEvent(channel=message_id, sender=self.receiver, receiver=self.sender), data)


class InMemoryChannel(Listener, Emitter):
    """
    Listener and emitter in one object.

    Dispatch is synchronous: send() runs every subscribed handler before
    returning. Handler exceptions propagate to the caller of send().
    """

    def __init__(self, name: str = "memory"):
        self.name = name
        self._handlers: dict[str, list[tuple[Handler, bool]]] = defaultdict(list)

    def on(self, channel: str, handler: Handler) -> None:
        self._handlers[channel].append((handler, False))

    def once(self, channel: str, handler: Handler) -> None:
        self._handlers[channel].append((handler, True))

    def remove_all_listeners(self, channel: str) -> None:
        self._handlers.pop(channel, None)

    def listener_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, ()))

    def send(self, channel: str, payload: Any) -> None:
        self.emit(channel, ChannelEvent(channel=channel, sender=self), payload)

    def emit(self, channel: str, event: Any, payload: Any) -> bool:
        """
        Deliver a payload to the handlers subscribed on this object.

        Returns:
            True if at least one handler was subscribed
        """
        subscribed = self._handlers.get(channel)
        if not subscribed:
            log.debug("channel.unobserved", transport=self.name, channel=channel)
            return False

        # once-handlers are dropped before running so re-entrant sends skip them
        handlers = list(subscribed)
        remaining = [entry for entry in subscribed if not entry[1]]
        if remaining:
            self._handlers[channel] = remaining
        else:
            del self._handlers[channel]

        for handler, _ in handlers:
            handler(event, payload)
        return True


class PipeEndpoint(InMemoryChannel):
    """One end of a connected pair: send() is delivered on the peer."""

    def __init__(self, name: str):
        super().__init__(name)
        self.peer: "PipeEndpoint | None" = None

    def send(self, channel: str, payload: Any) -> None:
        if self.peer is None:
            raise RuntimeError(f"pipe endpoint '{self.name}' is not connected")
        self.peer.emit(channel, PipeEvent(channel=channel, sender=self, receiver=self.peer), payload)


def create_pipe(left: str = "left", right: str = "right") -> tuple[PipeEndpoint, PipeEndpoint]:
    """Create two connected endpoints, like the two sides of a process boundary."""
    a = PipeEndpoint(left)
    b = PipeEndpoint(right)
    a.peer = b
    b.peer = a
    return a, b
