"""
Process-wide messaging API.

Wraps a module-level default Correlator so that one side of a transport can
be wired once at startup and used from anywhere in the process:

    messaging.initialize(listener, emitter, on_incoming_action)
    reply = await messaging.send_request("ping", {"n": 1}, timeout=1000)
"""
import asyncio
from typing import Any, Optional

from .adapters.base import Emitter, Listener
from .correlator import Correlator, IncomingActionCallback

# Global correlator instance
correlator = Correlator()


def initialize(
    listener: Listener,
    emitter: Optional[Emitter] = None,
    on_incoming_action: Optional[IncomingActionCallback] = None,
) -> Correlator:
    """Initialize the process-wide correlator. Raises AlreadyInitializedError on a second call."""
    correlator.initialize(listener, emitter, on_incoming_action)
    return correlator


def send_one_way(action: str, data: Any = None) -> None:
    correlator.send_one_way(action, data)


def send_request(action: str, data: Any = None, timeout: Optional[float] = None) -> asyncio.Future:
    return correlator.send_request(action, data, timeout)


def reply(message_id: str, data: Any = None, event: Any = None) -> None:
    correlator.reply(message_id, data, event)
