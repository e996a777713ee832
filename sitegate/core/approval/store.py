"""Request storage.

The store is the engine's only mutable state. It hands out live objects to
the service layer, which copies them before returning anything to callers.
Mutations of one request are serialized through ``lock(request_id)``;
different requests never contend.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Protocol

from sitegate.core.errors import NotFound

from .models import ApprovalRequest


class RequestStore(Protocol):
    """Persistence seam for approval requests."""

    def add(self, request: ApprovalRequest) -> None: ...

    def get(self, request_id: str) -> ApprovalRequest: ...

    def find(self, request_id: str) -> Optional[ApprovalRequest]: ...

    def save(self, request: ApprovalRequest) -> None: ...

    def all(self) -> List[ApprovalRequest]: ...

    def lock(self, request_id: str): ...


class RequestLocks:
    """Lazily created re-entrant lock per request id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def for_id(self, request_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(request_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[request_id] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, request_id: str) -> Iterator[None]:
        lock = self.for_id(request_id)
        with lock:
            yield


class InMemoryRequestStore:
    """Dictionary-backed store with per-request locking."""

    def __init__(self):
        self._requests: Dict[str, ApprovalRequest] = {}
        self._map_lock = threading.Lock()
        self._locks = RequestLocks()

    def add(self, request: ApprovalRequest) -> None:
        with self._map_lock:
            if request.id in self._requests:
                raise ValueError(f"Approval request {request.id} already exists")
            self._requests[request.id] = request

    def get(self, request_id: str) -> ApprovalRequest:
        request = self.find(request_id)
        if request is None:
            raise NotFound("Approval request", request_id)
        return request

    def find(self, request_id: str) -> Optional[ApprovalRequest]:
        with self._map_lock:
            return self._requests.get(request_id)

    def save(self, request: ApprovalRequest) -> None:
        # Replaces the stored object; unknown ids are an error, not an insert.
        with self._map_lock:
            if request.id not in self._requests:
                raise NotFound("Approval request", request.id)
            self._requests[request.id] = request

    def all(self) -> List[ApprovalRequest]:
        with self._map_lock:
            return list(self._requests.values())

    def lock(self, request_id: str):
        return self._locks.hold(request_id)

    def __len__(self) -> int:
        return len(self._requests)
