from __future__ import annotations

import asyncio
import time
from collections import Counter

import httpx
import pytest

import rdapcheck.engine.runtime as runtime
from rdapcheck.core import OutcomeKind, WorkQueue, check_domains, dispatch, feed

from conftest import collect_outcomes


def _status_by_name(request: httpx.Request) -> httpx.Response:
    name = request.url.path.rsplit("/", 1)[-1]
    status = {
        "taken.com": 200,
        "free.com": 404,
        "broken.com": 503,
        "moved.com": 301,
        "weird.com": 418,
    }.get(name, 404)
    return httpx.Response(status, json={"objectClassName": "domain"})


def test_scenario_unregistered_and_no_provider(directory):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(404)

    outcomes = collect_outcomes(["a.com", "b.xx"], directory, handler)
    lines = sorted(f"{o.domain},{o.message}" for o in outcomes)
    assert lines == ["a.com,Unregistered", "b.xx,No RDAP server found"]
    assert seen == ["http://r1/domain/a.com"]


def test_status_classification_end_to_end(directory):
    domains = ["taken.com", "free.com", "broken.com", "moved.com", "weird.com"]
    outcomes = {o.domain: o for o in collect_outcomes(domains, directory, _status_by_name)}
    assert outcomes["taken.com"].kind is OutcomeKind.REGISTERED
    assert outcomes["taken.com"].status_code == 200
    assert outcomes["free.com"].kind is OutcomeKind.UNREGISTERED
    assert outcomes["broken.com"].kind is OutcomeKind.SERVER_ERROR
    assert outcomes["broken.com"].message == "RDAP server error"
    assert outcomes["moved.com"].kind is OutcomeKind.UNKNOWN_STATUS
    assert outcomes["moved.com"].message == "Unknown error"
    assert outcomes["weird.com"].kind is OutcomeKind.UNKNOWN_STATUS


def test_only_first_endpoint_is_queried(directory):
    hosts = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        return httpx.Response(500)

    outcomes = collect_outcomes(["example.org"], directory, handler)
    assert hosts == ["r2"]
    assert outcomes[0].kind is OutcomeKind.SERVER_ERROR
    assert outcomes[0].endpoint == "http://r2"


def test_no_provider_never_touches_network(directory):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    domains = ["a.xx", "", "nodot", "example.COM", "example.com."]
    outcomes = collect_outcomes(domains, directory, handler)
    assert calls == []
    assert len(outcomes) == len(domains)
    assert all(o.kind is OutcomeKind.NO_PROVIDER for o in outcomes)
    assert all(o.message == "No RDAP server found" for o in outcomes)
    assert sorted(o.domain for o in outcomes) == sorted(domains)


def test_domain_is_sent_verbatim(directory):
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200)

    outcomes = collect_outcomes(["Example.com"], directory, handler)
    assert paths == ["/domain/Example.com"]
    assert outcomes[0].domain == "Example.com"
    assert outcomes[0].message == "Registered"


def test_every_domain_yields_one_outcome_when_all_fail(directory):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    domains = [f"host{i}.com" for i in range(50)] + ["dup.com", "dup.com"]
    outcomes = collect_outcomes(domains, directory, handler, concurrency=7)
    assert len(outcomes) == len(domains)
    assert Counter(o.domain for o in outcomes) == Counter(domains)
    assert all(o.kind is OutcomeKind.TRANSPORT_ERROR for o in outcomes)
    assert outcomes[0].message == "ConnectError: connection refused"


def test_empty_input_closes_stream_immediately(directory):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    assert collect_outcomes([], directory, handler) == []


@pytest.mark.parametrize("limit", [1, 3, 8])
def test_in_flight_lookups_never_exceed_limit(directory, limit):
    state = {"current": 0, "peak": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        state["current"] += 1
        state["peak"] = max(state["peak"], state["current"])
        await asyncio.sleep(0.005)
        state["current"] -= 1
        return httpx.Response(404)

    domains = [f"d{i}.com" for i in range(30)]
    outcomes = collect_outcomes(domains, directory, handler, concurrency=limit)
    assert len(outcomes) == len(domains)
    assert state["peak"] == limit
    assert state["current"] == 0


def test_unexpected_failure_still_emits_outcome_and_releases_slot(directory, monkeypatch):
    real_lookup = runtime.lookup_domain

    async def flaky_lookup(client, directory, domain):
        if domain.startswith("bad"):
            raise ValueError("parser exploded")
        return await real_lookup(client, directory, domain)

    monkeypatch.setattr(runtime, "lookup_domain", flaky_lookup)
    domains = ["bad1.com", "ok1.com", "bad2.com", "ok2.com"]
    outcomes = {o.domain: o for o in collect_outcomes(domains, directory, lambda r: httpx.Response(200), concurrency=1)}
    assert set(outcomes) == set(domains)
    assert outcomes["bad1.com"].kind is OutcomeKind.TRANSPORT_ERROR
    assert outcomes["bad1.com"].message == "ValueError: parser exploded"
    assert outcomes["ok2.com"].kind is OutcomeKind.REGISTERED


def test_dispatch_drains_concurrently_fed_queue(directory):
    async def run():
        queue = WorkQueue()

        async def slow_producer():
            for i in range(10):
                await queue.put(f"late{i}.com")
                await asyncio.sleep(0.001)
            queue.close()

        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404))) as client:
            producer = asyncio.create_task(slow_producer())
            outcomes = [o async for o in dispatch(queue, directory, 2, client=client)]
            await producer
        return outcomes

    outcomes = asyncio.run(run())
    assert sorted(o.domain for o in outcomes) == sorted(f"late{i}.com" for i in range(10))
    assert all(o.kind is OutcomeKind.UNREGISTERED for o in outcomes)


def test_dispatch_accepts_async_iterables(directory):
    async def domains():
        yield "a.com"
        yield "b.net"

    outcomes = collect_outcomes(domains(), directory, lambda r: httpx.Response(200))
    assert sorted(o.domain for o in outcomes) == ["a.com", "b.net"]


def test_feed_error_surfaces_after_started_lookups_finish(directory):
    def source():
        yield "a.com"
        yield "b.com"
        raise OSError("read failed")

    async def run():
        queue = WorkQueue()
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404))) as client:
            producer = asyncio.create_task(feed(queue, source()))
            outcomes = [o async for o in dispatch(queue, directory, 4, client=client)]
            with pytest.raises(OSError):
                await producer
        return outcomes

    outcomes = asyncio.run(run())
    assert sorted(o.domain for o in outcomes) == ["a.com", "b.com"]


def test_dispatch_rejects_non_positive_concurrency(directory):
    with pytest.raises(ValueError):
        dispatch(["a.com"], directory, 0)


def test_check_domains_sync_api(directory):
    transport = httpx.MockTransport(_status_by_name)
    outcomes = check_domains(["taken.com", "free.com", "x.zz"], directory, concurrency=2, transport=transport)
    assert {o.domain: o.message for o in outcomes} == {
        "taken.com": "Registered",
        "free.com": "Unregistered",
        "x.zz": "No RDAP server found",
    }
    single = check_domains("taken.com", directory, transport=transport)
    assert [o.kind for o in single] == [OutcomeKind.REGISTERED]


def test_feed_reads_ahead_only_a_bounded_number_of_domains(directory):
    state = {"yielded": 0, "handled": 0, "queued_peak": 0, "lead_peak": 0}

    def source():
        for i in range(200):
            state["yielded"] += 1
            yield f"bulk{i}.com"

    async def run():
        queue = WorkQueue()

        async def handler(request: httpx.Request) -> httpx.Response:
            state["handled"] += 1
            state["queued_peak"] = max(state["queued_peak"], queue.qsize())
            state["lead_peak"] = max(state["lead_peak"], state["yielded"] - state["handled"])
            await asyncio.sleep(0.001)
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            producer = asyncio.create_task(feed(queue, source()))
            outcomes = [o async for o in dispatch(queue, directory, 1, client=client)]
            await producer
        return outcomes

    outcomes = asyncio.run(run())
    assert len(outcomes) == 200
    assert state["queued_peak"] <= 1
    # One domain queued, one held by the dispatcher, one read and waiting to be queued.
    assert state["lead_peak"] <= 3


def test_slow_source_does_not_hold_back_lookups_in_flight(directory):
    def source():
        yield "a.com"
        time.sleep(1.0)
        yield "b.com"

    async def run():
        queue = WorkQueue()
        arrivals = {}
        started = time.monotonic()
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404))) as client:
            producer = asyncio.create_task(feed(queue, source()))
            async for outcome in dispatch(queue, directory, 4, client=client):
                arrivals[outcome.domain] = time.monotonic() - started
            await producer
        return arrivals

    arrivals = asyncio.run(run())
    assert set(arrivals) == {"a.com", "b.com"}
    assert arrivals["a.com"] < 0.5
    assert arrivals["b.com"] >= 0.9


def test_dispatch_rejects_timeout_with_own_client(directory):
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    with pytest.raises(ValueError, match="timeout"):
        dispatch(["a.com"], directory, 4, client=client, timeout=1.0)
