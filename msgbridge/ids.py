"""Request identifier generation."""
import itertools
import threading
import time
import uuid


class MessageIdGenerator:
    """
    Produces request identifiers that are unique for the lifetime of the process.

    Identifiers combine a per-generator sequence number with the creation
    time in epoch milliseconds. The sequence alone guarantees uniqueness; the
    timestamp is for diagnostics. A random namespace token keeps identifiers
    from different generators apart when they share one transport.
    """

    def __init__(self, prefix: str = "msg", namespaced: bool = True):
        self.prefix = prefix
        self.namespace = uuid.uuid4().hex[:8] if namespaced else None
        self._seq = itertools.count(1)
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            seq = next(self._seq)
        now_ms = int(time.time() * 1000)
        if self.namespace:
            return f"{self.prefix}-{self.namespace}-{seq}-{now_ms}"
        return f"{self.prefix}-{seq}-{now_ms}"
