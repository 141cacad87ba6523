"""Transport contracts consumed by the correlator."""
from abc import ABC, abstractmethod
from typing import Any, Callable

Handler = Callable[[Any, Any], Any]


class Listener(ABC):
    """Inbound side of a transport: delivers (event, payload) pairs per channel."""

    @abstractmethod
    def on(self, channel: str, handler: Handler) -> None:
        """
        Subscribe a handler to every event on a channel.

        Args:
            channel: Channel name
            handler: Callable receiving (event, payload)
        """
        pass

    @abstractmethod
    def once(self, channel: str, handler: Handler) -> None:
        """
        Subscribe a handler to the next event on a channel only.

        Args:
            channel: Channel name
            handler: Callable receiving (event, payload)
        """
        pass

    @abstractmethod
    def remove_all_listeners(self, channel: str) -> None:
        """
        Drop every handler subscribed to a channel.

        Args:
            channel: Channel name
        """
        pass


class Emitter(ABC):
    """Outbound side of a transport."""

    @abstractmethod
    def send(self, channel: str, payload: Any) -> None:
        """
        Send a payload on a channel. Fire-and-forget.

        Args:
            channel: Channel name
            payload: Opaque payload, passed through unserialized
        """
        pass

