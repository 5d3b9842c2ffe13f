from __future__ import annotations

import itertools
import threading
from collections import OrderedDict
from dataclasses import dataclass

from fastapi import HTTPException

MAX_KEYS = 10_000


class StaleRequest(RuntimeError):
    pass


@dataclass(frozen=True)
class RequestTicket:
    key: str
    token: int


class RequestGuard:
    """Monotonic request ids per key. Only the latest ticket for a key is current.

    Keys live only while a request for them is in flight; the oldest keys are
    evicted once max_keys is reached, which turns their tickets stale.
    """

    def __init__(self, max_keys: int = MAX_KEYS):
        self._lock = threading.Lock()
        self._latest: OrderedDict[str, int] = OrderedDict()
        # one counter for all keys: a released key never reissues a token
        self._tokens = itertools.count(1)
        self.max_keys = max_keys

    def __len__(self) -> int:
        return len(self._latest)

    def begin(self, key: str) -> RequestTicket:
        with self._lock:
            token = next(self._tokens)
            self._latest[key] = token
            self._latest.move_to_end(key)
            while len(self._latest) > self.max_keys:
                self._latest.popitem(last=False)
        return RequestTicket(key=key, token=token)

    def is_current(self, ticket: RequestTicket) -> bool:
        with self._lock:
            return self._latest.get(ticket.key) == ticket.token

    def ensure_current(self, ticket: RequestTicket | None) -> None:
        if ticket is None:
            return
        if not self.is_current(ticket):
            raise StaleRequest(ticket.key)

    def release(self, ticket: RequestTicket | None) -> None:
        """Forget the key if this ticket is still its latest one."""
        if ticket is None:
            return
        with self._lock:
            if self._latest.get(ticket.key) == ticket.token:
                del self._latest[ticket.key]

    def reset(self) -> None:
        with self._lock:
            self._latest.clear()


guard = RequestGuard()


def finish(ticket: RequestTicket | None, payload):
    """Return payload if the ticket is still the latest one, else answer 409."""
    try:
        guard.ensure_current(ticket)
    except StaleRequest:
        raise HTTPException(status_code=409, detail="stale_request")
    guard.release(ticket)
    return payload
