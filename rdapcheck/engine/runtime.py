from __future__ import annotations

"""Core lookup engine for rdapcheck.

This module contains the runtime used by both CLI and Python API:
- the domain feed (`WorkQueue`, `feed`)
- single-domain RDAP classification (`lookup_domain`)
- the bounded dispatcher streaming outcomes (`dispatch`)
- synchronous helpers (`check_domains`, `_run_coro_sync`)

Keep logic in this file side-effect free where possible, because it is imported
from both `rdapcheck/cli.py` and external user scripts.
"""

import asyncio
import logging
import sys
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator, Dict, Iterable, List, Optional, Set, Tuple, Union

import httpx

from ..version import USER_AGENT
from .bootstrap import RegistryDirectory

DEFAULT_CONCURRENCY = 256
LABEL_SEPARATOR = "."
LOOKUP_PATH = "/domain/"

logger = logging.getLogger("rdapcheck")
logger.setLevel(logging.WARNING)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s", "%H:%M:%S"))
    logger.addHandler(handler)


def fmt_td(td: Optional[timedelta]) -> str:
    if td is None:
        return "-"
    total_seconds = int(td.total_seconds())
    hours, rem = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class OutcomeKind(str, Enum):
    REGISTERED = "registered"
    UNREGISTERED = "unregistered"
    SERVER_ERROR = "server_error"
    NO_PROVIDER = "no_provider"
    TRANSPORT_ERROR = "transport_error"
    UNKNOWN_STATUS = "unknown_status"


NO_PROVIDER_MESSAGE = "No RDAP server found"

_STATUS_MESSAGES = {
    OutcomeKind.REGISTERED: "Registered",
    OutcomeKind.UNREGISTERED: "Unregistered",
    OutcomeKind.SERVER_ERROR: "RDAP server error",
    OutcomeKind.UNKNOWN_STATUS: "Unknown error",
}


@dataclass(frozen=True)
class LookupOutcome:
    """Classification of one input domain.

    `domain` is the caller's string, untouched. `message` is what the line
    output prints after the comma.
    """

    domain: str
    kind: OutcomeKind
    message: str
    status_code: Optional[int] = None
    endpoint: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "result": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
            "endpoint": self.endpoint,
        }


class WorkQueue:
    """Bounded channel of domains, closed by the producer when exhausted.

    `put` waits while `maxsize` domains are queued, so a producer only runs
    ahead of the dispatcher by that many items. Iterating the queue yields
    domains in the order they were put and stops once `close()` was called and
    everything before it was consumed.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 1) -> None:
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._marker_pending = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def put_nowait(self, domain: str) -> None:
        """Queue `domain` without waiting; raises `asyncio.QueueFull` when full."""
        if self._closed:
            raise RuntimeError("WorkQueue is closed")
        self._queue.put_nowait(domain)

    async def put(self, domain: str) -> None:
        if self._closed:
            raise RuntimeError("WorkQueue is closed")
        await self._queue.put(domain)

    def _place_marker(self) -> None:
        try:
            self._queue.put_nowait(self._CLOSED)
            self._marker_pending = False
        except asyncio.QueueFull:
            # Placed by the consumer as soon as it frees a slot.
            self._marker_pending = True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._place_marker()

    def __aiter__(self) -> "WorkQueue":
        return self

    async def __anext__(self) -> str:
        item = await self._queue.get()
        if item is self._CLOSED:
            # Leave the marker in place so later iterations also stop.
            self._place_marker()
            raise StopAsyncIteration
        if self._marker_pending:
            self._place_marker()
        return item


_SOURCE_DONE = object()


async def _aiter_source(source: Union[Iterable[str], AsyncIterable[str]]) -> AsyncIterator[str]:
    """Iterate `source` without blocking the event loop.

    In-memory sequences are walked directly; any other sync iterable (files,
    `sys.stdin`, generators) is advanced in the default executor so a slow read
    never stalls lookups already in flight.
    """
    if hasattr(source, "__aiter__"):
        async for domain in source:  # type: ignore[union-attr]
            yield domain
        return
    if isinstance(source, (list, tuple)):
        for domain in source:
            yield domain
        return
    loop = asyncio.get_running_loop()
    iterator = iter(source)
    while True:
        domain = await loop.run_in_executor(None, next, iterator, _SOURCE_DONE)
        if domain is _SOURCE_DONE:
            return
        yield domain


async def feed(queue: WorkQueue, *sources: Union[Iterable[str], AsyncIterable[str]]) -> None:
    """Push every domain of every source into `queue`, then close it."""
    try:
        for source in sources:
            async for domain in _aiter_source(source):
                await queue.put(domain)
    finally:
        queue.close()


def top_level_label(domain: str) -> str:
    if not domain:
        return ""
    return domain.split(LABEL_SEPARATOR)[-1]


def rdap_lookup_url(endpoint: str, domain: str) -> str:
    # Bootstrap URLs usually carry a trailing slash; the domain is not escaped.
    return f"{endpoint.rstrip('/')}{LOOKUP_PATH}{domain}"


def classify_status(status_code: int) -> Tuple[OutcomeKind, str]:
    """Map an RDAP response status to an outcome.

    Only the status matters: registries such as Verisign answer 404 for names
    that are not registered, which is taken as proof of availability.
    """
    if 200 <= status_code < 300:
        kind = OutcomeKind.REGISTERED
    elif status_code == 404:
        kind = OutcomeKind.UNREGISTERED
    elif status_code >= 500:
        kind = OutcomeKind.SERVER_ERROR
    else:
        kind = OutcomeKind.UNKNOWN_STATUS
    return kind, _STATUS_MESSAGES[kind]


def _error_text(exc: BaseException) -> str:
    return f"{exc.__class__.__name__}: {exc}"


async def lookup_domain(client: httpx.AsyncClient, directory: RegistryDirectory, domain: str) -> LookupOutcome:
    """Classify one domain with a single request to its first RDAP endpoint."""
    endpoints, found = directory.lookup(top_level_label(domain))
    if not found or not endpoints:
        return LookupOutcome(domain, OutcomeKind.NO_PROVIDER, NO_PROVIDER_MESSAGE)

    # TODO: try the remaining endpoints when the first one fails at transport level.
    endpoint = endpoints[0]
    url = rdap_lookup_url(endpoint, domain)
    try:
        # The body is read in full (and ignored) so the connection can be reused.
        response = await client.get(url, follow_redirects=False)
    except Exception as exc:  # network errors are expected
        logger.debug("Lookup failed for %s via %s: %s", domain, url, _error_text(exc))
        return LookupOutcome(domain, OutcomeKind.TRANSPORT_ERROR, _error_text(exc), endpoint=endpoint)

    kind, message = classify_status(response.status_code)
    logger.debug("%s -> HTTP %s (%s)", url, response.status_code, kind.value)
    return LookupOutcome(domain, kind, message, status_code=response.status_code, endpoint=endpoint)


def build_client(
    concurrency: int = DEFAULT_CONCURRENCY,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Shared HTTP client sized to the concurrency budget."""
    kwargs: Dict[str, Any] = {
        "http2": True,
        "headers": {"User-Agent": USER_AGENT, "Accept": "application/rdap+json"},
        "limits": httpx.Limits(
            max_connections=max(100, concurrency * 2),
            max_keepalive_connections=max(50, concurrency),
        ),
    }
    if timeout is not None:
        kwargs["timeout"] = httpx.Timeout(timeout)
    if transport is not None:
        kwargs["transport"] = transport
    return httpx.AsyncClient(**kwargs)


@asynccontextmanager
async def _client_scope(
    client: Optional[httpx.AsyncClient],
    concurrency: int,
    timeout: Optional[float],
) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with build_client(concurrency, timeout) as owned:
        yield owned


_STREAM_END = object()


async def _run_lookup(
    client: httpx.AsyncClient,
    directory: RegistryDirectory,
    domain: str,
    budget: asyncio.Semaphore,
    results: "asyncio.Queue[Any]",
) -> None:
    try:
        try:
            outcome = await lookup_domain(client, directory, domain)
        except Exception as exc:
            logger.exception("Unexpected lookup failure for %s", domain)
            outcome = LookupOutcome(domain, OutcomeKind.TRANSPORT_ERROR, _error_text(exc))
        results.put_nowait(outcome)
    finally:
        budget.release()


async def _run_dispatcher(
    domains: Union[Iterable[str], AsyncIterable[str]],
    client: httpx.AsyncClient,
    directory: RegistryDirectory,
    budget: asyncio.Semaphore,
    results: "asyncio.Queue[Any]",
) -> int:
    started = 0
    pending: Set["asyncio.Task[None]"] = set()
    try:
        async for domain in _aiter_source(domains):
            # Backpressure: wait for a free slot before starting the next lookup.
            await budget.acquire()
            task = asyncio.create_task(_run_lookup(client, directory, domain, budget, results))
            pending.add(task)
            task.add_done_callback(pending.discard)
            started += 1
    finally:
        # The stream ends only after every started lookup delivered its outcome.
        if pending:
            await asyncio.gather(*pending)
        results.put_nowait(_STREAM_END)
    logger.debug("Dispatched %d lookups", started)
    return started


async def _stream(
    domains: Union[Iterable[str], AsyncIterable[str]],
    directory: RegistryDirectory,
    concurrency: int,
    client: Optional[httpx.AsyncClient],
    timeout: Optional[float],
) -> AsyncIterator[LookupOutcome]:
    budget = asyncio.Semaphore(concurrency)
    results: "asyncio.Queue[Any]" = asyncio.Queue()
    async with _client_scope(client, concurrency, timeout) as http:
        dispatcher = asyncio.create_task(_run_dispatcher(domains, http, directory, budget, results))
        try:
            while True:
                item = await results.get()
                if item is _STREAM_END:
                    break
                yield item
            # Surface producer errors (e.g. unreadable domain file).
            await dispatcher
        finally:
            if not dispatcher.done():
                dispatcher.cancel()
                await asyncio.gather(dispatcher, return_exceptions=True)


def dispatch(
    domains: Union[Iterable[str], AsyncIterable[str]],
    directory: RegistryDirectory,
    concurrency: int = DEFAULT_CONCURRENCY,
    client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
) -> AsyncIterator[LookupOutcome]:
    """Look up every domain with at most `concurrency` requests in flight.

    Flow:
    1. drain `domains` (list, generator, async iterable or `WorkQueue`) lazily
    2. acquire a budget slot, start one lookup task, move on
    3. yield outcomes in completion order, exactly one per domain
    4. end the stream once every started task has finished

    When `client` is None a client is created for the run (with `timeout`, if
    given) and closed after it. A caller-supplied client keeps its own timeout
    configuration, so passing both `client` and `timeout` is rejected.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")
    if client is not None and timeout is not None:
        raise ValueError("timeout cannot be combined with a caller-supplied client; configure the client instead")
    return _stream(domains, directory, concurrency, client, timeout)


def _run_coro_sync(coro: Any) -> Any:
    """Run async code from sync callers (CLI and public API).

    If already inside an event loop, execute in a helper thread to avoid
    `RuntimeError: asyncio.run() cannot be called from a running event loop`.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    outcome: Dict[str, Any] = {}

    def target() -> None:
        try:
            outcome["result"] = asyncio.run(coro)
        except Exception as exc:  # pragma: no cover - fallback path
            outcome["error"] = exc

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    thread.join()

    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("result")


def check_domains(
    domains: Union[str, Iterable[str]],
    directory: RegistryDirectory,
    concurrency: int = DEFAULT_CONCURRENCY,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[LookupOutcome]:
    """Public synchronous Python API entrypoint.

    Example:
    `check_domains(["example.com", "example.net"], load_directory())`
    """
    if isinstance(domains, str):
        domains = [domains]

    async def collect() -> List[LookupOutcome]:
        async with build_client(concurrency, timeout, transport) as client:
            return [outcome async for outcome in dispatch(domains, directory, concurrency, client=client)]

    return _run_coro_sync(collect())
