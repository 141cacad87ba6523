"""Request/reply correlation over a listener/emitter transport."""
import asyncio
import functools
import inspect
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from .adapters.base import Emitter, Listener
from .config import Settings, get_settings
from .ids import MessageIdGenerator
from .messages import OutboundMessage
from .metrics.collector import (
    MetricsCollector,
    REQUESTS_SENT_TOTAL,
    REPLIES_RECEIVED_TOTAL,
    REQUESTS_TIMED_OUT_TOTAL,
    REQUESTS_CANCELLED_TOTAL,
    LATE_REPLIES_TOTAL,
    INBOUND_REQUESTS_TOTAL,
    HANDLER_ERRORS_TOTAL,
    PENDING_REQUESTS,
    REPLY_LATENCY_MS,
)

log = structlog.get_logger()

# (action, data, event, message_id); may return an awaitable
IncomingActionCallback = Callable[[str, Any, Any, str], Any]


class MessagingError(Exception):
    """Base exception for correlator errors"""
    pass


class AlreadyInitializedError(MessagingError):
    """Raised when initialize() is called on an initialized or closed correlator"""
    pass


class InvalidParametersError(MessagingError):
    """Raised when initialize() is missing the listener or the callback"""
    pass


class NotInitializedError(MessagingError):
    """Raised when sending before initialize() or after close()"""
    pass


class TimedOutError(MessagingError):
    """Delivered through the request future when no reply arrived in time"""

    def __init__(self, action: str, message_id: str, timeout_ms: float):
        self.action = action
        self.message_id = message_id
        self.timeout_ms = timeout_ms
        super().__init__(f"[{message_id}] '{action}' timed out after {timeout_ms:g} ms")


@dataclass
class PendingRequest:
    """A request awaiting its reply or its timeout."""
    message_id: str
    action: str
    future: asyncio.Future
    timer: Optional[asyncio.TimerHandle] = None
    # None means the request waits forever
    timeout_ms: Optional[float] = None
    created_at: float = field(default_factory=time.monotonic)


class Correlator:
    """
    Matches outbound requests to inbound replies by message identifier.

    Requests go out on a single reserved channel. Each request that expects
    a reply listens once on a channel named after its own identifier and
    races an optional timer. Whichever side removes the entry from the
    pending registry first decides the outcome, so every request completes
    at most once.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        metrics: Optional[MetricsCollector] = None,
        id_generator: Optional[MessageIdGenerator] = None,
    ):
        """
        Initialize Correlator

        Args:
            settings: Settings instance (defaults to get_settings())
            metrics: Metrics collector (a fresh one per correlator if not provided)
            id_generator: Identifier generator (built from settings if not provided)
        """
        self.settings = settings or get_settings()
        self._ids = id_generator or MessageIdGenerator(
            prefix=self.settings.ID_PREFIX,
            namespaced=self.settings.NAMESPACE_IDS,
        )
        self._metrics = metrics or MetricsCollector(namespace=self._ids.namespace)
        self._listener: Optional[Listener] = None
        self._emitter: Optional[Emitter] = None
        self._on_incoming_action: Optional[IncomingActionCallback] = None
        self._pending: dict[str, PendingRequest] = {}
        self._lock = threading.RLock()
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def is_initialized(self) -> bool:
        return self._listener is not None and not self._closed

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def is_pending(self, message_id: str) -> bool:
        with self._lock:
            return message_id in self._pending

    def initialize(
        self,
        listener: Listener,
        emitter: Optional[Emitter] = None,
        on_incoming_action: Optional[IncomingActionCallback] = None,
    ) -> None:
        """
        Attach the transport and start dispatching inbound requests.

        Args:
            listener: Inbound side of the transport
            emitter: Outbound side (the listener is used if omitted)
            on_incoming_action: Called with (action, data, event, message_id)
                for every inbound request

        Raises:
            AlreadyInitializedError: If called more than once
            InvalidParametersError: If listener or on_incoming_action is missing
        """
        if self._listener is not None or self._closed:
            raise AlreadyInitializedError("Already initialized")
        emitter = emitter if emitter is not None else listener
        if listener is None or on_incoming_action is None:
            raise InvalidParametersError("Invalid parameters: listener and on_incoming_action are required")

        self._listener = listener
        self._emitter = emitter
        self._on_incoming_action = on_incoming_action
        listener.on(self.settings.REQUEST_CHANNEL, self._handle_request)
        log.info(
            "correlator.initialized",
            request_channel=self.settings.REQUEST_CHANNEL,
            id_namespace=self._ids.namespace,
        )

    def send_one_way(self, action: str, data: Any = None) -> None:
        """Send a request that expects no reply."""
        message = self._build_message(action, data)
        self._transmit(message)
        self._metrics.increment(REQUESTS_SENT_TOTAL, labels={"mode": "one_way"})

    def send_request(self, action: str, data: Any = None, timeout: Optional[float] = None) -> asyncio.Future:
        """
        Send a request and return a future for its reply.

        Args:
            action: Operation name
            data: Opaque payload
            timeout: Milliseconds to wait. 0 sends one-way and returns an
                already resolved future, any negative value waits forever,
                None applies DEFAULT_TIMEOUT_MS.

        Returns:
            Future resolving with the reply payload, or failing with TimedOutError

        Raises:
            NotInitializedError: If initialize() has not been called
            RuntimeError: If no event loop is running
        """
        self._require_initialized()
        loop = asyncio.get_running_loop()

        if timeout == 0:
            self.send_one_way(action, data)
            future = loop.create_future()
            future.set_result(None)
            return future

        timeout_ms = self._resolve_timeout(timeout)
        message = self._build_message(action, data)
        future = loop.create_future()

        timer = None
        if timeout_ms is not None:
            timer = loop.call_later(timeout_ms / 1000, self._expire, message.id)

        pending = PendingRequest(
            message_id=message.id,
            action=action,
            future=future,
            timer=timer,
            timeout_ms=timeout_ms,
        )
        # Registered before transmitting so an immediate reply finds the entry
        with self._lock:
            self._pending[message.id] = pending
            self._metrics.gauge(PENDING_REQUESTS, len(self._pending))
        try:
            self._listener.once(message.id, functools.partial(self._handle_reply, message.id))
            self._transmit(message)
        except Exception:
            self._discard(message.id)
            raise

        future.add_done_callback(functools.partial(self._on_future_done, message.id))
        self._metrics.increment(REQUESTS_SENT_TOTAL, labels={"mode": "request"})
        return future

    def reply(self, message_id: str, data: Any = None, event: Any = None) -> None:
        """
        Answer an inbound request.

        Uses the event's own reply channel when it has one, otherwise sends
        on the shared emitter under the request identifier.
        """
        direct = getattr(event, "reply", None)
        if callable(direct):
            log.debug("reply.sent", message_id=message_id, via="event")
            direct(message_id, data)
            return

        self._require_initialized()
        log.debug("reply.sent", message_id=message_id, via="emitter")
        self._emitter.send(message_id, data)

    def close(self) -> None:
        """Detach from the transport and cancel everything still pending."""
        if self._closed:
            return
        self._closed = True

        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
            self._metrics.gauge(PENDING_REQUESTS, 0)

        if self._listener is not None:
            self._listener.remove_all_listeners(self.settings.REQUEST_CHANNEL)
            for entry in pending:
                self._listener.remove_all_listeners(entry.message_id)

        for entry in pending:
            if entry.timer is not None:
                entry.timer.cancel()
            if not entry.future.done():
                entry.future.cancel()

        for task in list(self._tasks):
            task.cancel()

        log.info("correlator.closed", cancelled=len(pending))

    def stats(self) -> dict:
        """Snapshot of the metrics collector."""
        return self._metrics.get_metrics()

    def _require_initialized(self) -> None:
        if self._closed:
            raise NotInitializedError("Correlator is closed")
        if self._listener is None:
            raise NotInitializedError("Correlator is not initialized")

    def _resolve_timeout(self, timeout: Optional[float]) -> Optional[float]:
        if timeout is None or math.isnan(timeout):
            return float(self.settings.DEFAULT_TIMEOUT_MS)
        if timeout < 0:
            return None
        return float(timeout)

    def _build_message(self, action: str, data: Any) -> OutboundMessage:
        self._require_initialized()
        return OutboundMessage(id=self._ids.next_id(), action=action, data=data)

    def _transmit(self, message: OutboundMessage) -> None:
        log.debug("request.sent", message_id=message.id, action=message.action)
        self._emitter.send(self.settings.REQUEST_CHANNEL, message)

    def _handle_request(self, event: Any, payload: Any) -> None:
        try:
            message = OutboundMessage.model_validate(payload)
        except ValidationError as e:
            log.warning("request.malformed", error=str(e))
            return

        self._metrics.increment(INBOUND_REQUESTS_TOTAL, labels={"action": message.action})
        with structlog.contextvars.bound_contextvars(message_id=message.id, action=message.action):
            log.debug("request.received")
            try:
                result = self._on_incoming_action(message.action, message.data, event, message.id)
            except Exception:
                self._metrics.increment(HANDLER_ERRORS_TOTAL, labels={"action": message.action})
                log.exception("request.handler_failed")
                return

            if inspect.isawaitable(result):
                self._schedule_handler(result, message)

    def _schedule_handler(self, awaitable: Any, message: OutboundMessage) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self._metrics.increment(HANDLER_ERRORS_TOTAL, labels={"action": message.action})
            log.error("request.handler_no_loop")
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._on_handler_done, message))

    def _on_handler_done(self, message: OutboundMessage, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._metrics.increment(HANDLER_ERRORS_TOTAL, labels={"action": message.action})
            log.error(
                "request.handler_failed",
                message_id=message.id,
                action=message.action,
                exc_info=exc,
            )

    def _handle_reply(self, message_id: str, event: Any, payload: Any) -> None:
        # May be called from a transport thread; the registry pop decides the winner
        with self._lock:
            pending = self._pending.pop(message_id, None)
            if pending is not None:
                self._metrics.gauge(PENDING_REQUESTS, len(self._pending))

        if pending is None:
            self._metrics.increment(LATE_REPLIES_TOTAL)
            log.warning("reply.late", message_id=message_id)
            return

        _call_in_loop(pending.future.get_loop(), self._fulfil, pending, payload)

    def _fulfil(self, pending: PendingRequest, payload: Any) -> None:
        if pending.timer is not None:
            pending.timer.cancel()
        if pending.future.done():
            return
        pending.future.set_result(payload)
        self._metrics.increment(REPLIES_RECEIVED_TOTAL, labels={"action": pending.action})
        self._metrics.observe_latency(REPLY_LATENCY_MS, pending.created_at, labels={"action": pending.action})
        log.debug("reply.received", message_id=pending.message_id, action=pending.action)

    def _expire(self, message_id: str) -> None:
        with self._lock:
            pending = self._pending.pop(message_id, None)
            if pending is not None:
                self._metrics.gauge(PENDING_REQUESTS, len(self._pending))
        if pending is None:
            return

        self._listener.remove_all_listeners(message_id)
        self._metrics.increment(REQUESTS_TIMED_OUT_TOTAL, labels={"action": pending.action})
        log.warning(
            "request.timed_out",
            message_id=message_id,
            action=pending.action,
            timeout_ms=pending.timeout_ms,
        )
        if not pending.future.done():
            pending.future.set_exception(TimedOutError(pending.action, message_id, pending.timeout_ms))

    def _on_future_done(self, message_id: str, future: asyncio.Future) -> None:
        if not future.cancelled():
            return
        pending = self._discard(message_id)
        if pending is not None:
            self._metrics.increment(REQUESTS_CANCELLED_TOTAL, labels={"action": pending.action})
            log.info("request.cancelled", message_id=message_id, action=pending.action)

    def _discard(self, message_id: str) -> Optional[PendingRequest]:
        with self._lock:
            pending = self._pending.pop(message_id, None)
            if pending is not None:
                self._metrics.gauge(PENDING_REQUESTS, len(self._pending))
        if pending is None:
            return None
        if pending.timer is not None:
            pending.timer.cancel()
        self._listener.remove_all_listeners(message_id)
        return pending


def _call_in_loop(loop: asyncio.AbstractEventLoop, callback: Callable, *args: Any) -> None:
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop:
        callback(*args)
    else:
        loop.call_soon_threadsafe(callback, *args)
