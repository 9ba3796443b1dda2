"""Bounded-concurrency fetch scheduler for tagfeed."""

import itertools
import threading
from collections import deque
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Protocol

import requests

from .errors import TransportFailure
from .logging_config import create_execution_logger


class Transport(Protocol):
    def fetch(self, url: str) -> tuple[int, bytes]: ...


@dataclass
class FetchResult:
    """Raw outcome of one fetch: a status and body, or a transport error."""

    url: str
    status: int | None = None
    body: bytes | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FetchRequest:
    """A queued or in-flight fetch."""

    id: int
    url: str
    on_done: Callable[[FetchResult], None]


class HttpTransport:
    """Fetches feed bodies over HTTP with a shared requests session."""

    def __init__(
        self,
        timeout: int = 30,
        user_agent: str = "tagfeed/1.0 (Feed Aggregator)",
        session: requests.Session | None = None,
    ):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

    def fetch(self, url: str) -> tuple[int, bytes]:
        """Download a feed.

        Returns:
            Tuple of (status code, response body)

        Raises:
            TransportFailure: If the request cannot be completed
        """
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportFailure(url, str(e)) from e
        return response.status_code, response.content


class FetchScheduler:
    """Runs fetches with at most max_connections in flight at once.

    Requests are admitted in FIFO order. When a fetch finishes its slot is
    released and refilled from the queue before the caller's callback runs.
    Callbacks run one at a time on a dedicated thread, in completion order,
    so a slow callback never holds a connection slot.
    There is no timeout or cancellation here; a hung fetch holds its slot
    until the transport gives up.
    """

    def __init__(
        self,
        transport: Transport,
        max_connections: int = 6,
        execution_id: str | None = None,
    ):
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")

        self.transport = transport
        self.max_connections = max_connections
        self.logger = create_execution_logger("scheduler", execution_id)

        self._ids = itertools.count(1)
        self._waiting: deque[FetchRequest] = deque()
        self._in_flight: dict[int, FetchRequest] = {}
        # waiting + in flight + callbacks still running
        self._pending = 0
        self._closed = False
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._executor = ThreadPoolExecutor(
            max_workers=max_connections, thread_name_prefix="tagfeed-fetch"
        )
        self._callbacks = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="tagfeed-callback"
        )

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def waiting_count(self) -> int:
        with self._lock:
            return len(self._waiting)

    def enqueue(self, url: str, on_done: Callable[[FetchResult], None]) -> int:
        """Queue a fetch and return its request id without blocking.

        Raises:
            RuntimeError: If the scheduler has been shut down
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot enqueue fetches after shutdown")
            request = FetchRequest(id=next(self._ids), url=url, on_done=on_done)
            self._waiting.append(request)
            self._pending += 1

        self.logger.debug("Queued fetch", feed_url=url, request_id=request.id)
        self._admit()
        return request.id

    def _admit(self) -> None:
        admitted = []
        with self._lock:
            while (
                not self._closed
                and self._waiting
                and len(self._in_flight) < self.max_connections
            ):
                request = self._waiting.popleft()
                self._in_flight[request.id] = request
                admitted.append(request)

        for request in admitted:
            try:
                self._executor.submit(self._run, request)
            except RuntimeError:
                with self._lock:
                    del self._in_flight[request.id]
                self.logger.warning(
                    "Scheduler shut down, dropping fetch",
                    feed_url=request.url,
                    request_id=request.id,
                )
                self._finish()

    def _run(self, request: FetchRequest) -> None:
        try:
            status, body = self.transport.fetch(request.url)
            result = FetchResult(url=request.url, status=status, body=body)
        except TransportFailure as e:
            result = FetchResult(url=request.url, error=e)
        except Exception as e:
            failure = TransportFailure(request.url, f"{type(e).__name__}: {e}")
            result = FetchResult(url=request.url, error=failure)

        with self._lock:
            del self._in_flight[request.id]
        self._admit()

        try:
            self._callbacks.submit(self._complete, request, result)
        except RuntimeError:
            self.logger.warning(
                "Scheduler shut down, dropping fetch result",
                feed_url=request.url,
                request_id=request.id,
            )
            self._finish()

    def _complete(self, request: FetchRequest, result: FetchResult) -> None:
        try:
            request.on_done(result)
        except Exception as e:
            self.logger.error(
                f"Fetch callback failed for {request.url}: {e}",
                feed_url=request.url,
                request_id=request.id,
                error=str(e),
            )
        finally:
            self._finish()

    def _finish(self) -> None:
        with self._idle:
            self._pending -= 1
            if self._pending == 0:
                self._idle.notify_all()

    def join(self, timeout: float | None = None) -> bool:
        """Block until nothing is queued, in flight or calling back.

        Returns:
            True if the scheduler went idle, False on timeout
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; optionally wait for running fetches to finish.

        Requests still waiting for a slot are dropped without a callback.
        """
        with self._idle:
            self._closed = True
            dropped = len(self._waiting)
            self._waiting.clear()
            self._pending -= dropped
            if self._pending == 0:
                self._idle.notify_all()
        if dropped:
            self.logger.warning("Dropped queued fetches on shutdown", dropped=dropped)

        self._executor.shutdown(wait=wait)
        self._callbacks.shutdown(wait=wait)
