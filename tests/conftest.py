from __future__ import annotations

import asyncio
from typing import Callable, Iterable, List

import httpx
import pytest

from rdapcheck.core import LookupOutcome, RegistryDirectory, dispatch


@pytest.fixture
def directory() -> RegistryDirectory:
    return RegistryDirectory.from_bootstrap(
        {
            "description": "test bootstrap",
            "publication": "2024-01-01T00:00:00Z",
            "services": [
                [["com", "net"], ["http://r1/"]],
                [["org"], ["http://r2", "http://r2-backup"]],
            ],
        }
    )


def collect_outcomes(
    domains: Iterable[str],
    directory: RegistryDirectory,
    handler: Callable,
    concurrency: int = 4,
) -> List[LookupOutcome]:
    async def run() -> List[LookupOutcome]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return [o async for o in dispatch(domains, directory, concurrency, client=client)]

    return asyncio.run(run())
