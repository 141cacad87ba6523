"""
msgbridge - request/reply correlation over an event listener/emitter pair.

Provides:
- Correlated requests with bounded, unbounded or no wait for a reply
- Replies routed back point-to-point or over the shared emitter
- In-memory transports for in-process wiring and tests
"""

from .correlator import (
    Correlator,
    PendingRequest,
    MessagingError,
    AlreadyInitializedError,
    InvalidParametersError,
    NotInitializedError,
    TimedOutError,
)
from .messages import OutboundMessage
from .ids import MessageIdGenerator
from .adapters.base import Listener, Emitter
from .adapters.memory import InMemoryChannel, PipeEndpoint, create_pipe

__all__ = [
    "Correlator",
    "PendingRequest",
    "MessagingError",
    "AlreadyInitializedError",
    "InvalidParametersError",
    "NotInitializedError",
    "TimedOutError",
    "OutboundMessage",
    "MessageIdGenerator",
    "Listener",
    "Emitter",
    "InMemoryChannel",
    "PipeEndpoint",
    "create_pipe",
]
