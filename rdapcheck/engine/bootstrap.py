from __future__ import annotations

"""RDAP bootstrap loading.

The IANA bootstrap file maps top-level labels to the base URLs of the RDAP
services that answer for them. It is fetched once at startup and turned into
a read-only `RegistryDirectory` shared by every lookup task.

Document shape:

    {
      "description": "RDAP bootstrap file for Domain Name System registrations",
      "publication": "2022-12-08T18:00:02Z",
      "services": [
        [["uz"], ["http://cctld.uz:9000/"]]
      ]
    }
"""

import json
import logging
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import httpx

from ..version import USER_AGENT

IANA_DNS_BOOTSTRAP_URL = "https://data.iana.org/rdap/dns.json"

logger = logging.getLogger("rdapcheck")


class BootstrapError(RuntimeError):
    """Bootstrap document could not be fetched or is structurally invalid."""


class RegistryDirectory:
    """Immutable top-level label -> RDAP base URLs mapping."""

    def __init__(
        self,
        routes: Mapping[str, Tuple[str, ...]],
        description: Optional[str] = None,
        publication: Optional[str] = None,
    ):
        self._routes = MappingProxyType(dict(routes))
        self.description = description
        self.publication = publication

    @classmethod
    def from_bootstrap(cls, document: Any) -> "RegistryDirectory":
        """Build the directory from a decoded bootstrap document.

        Fails as a whole on the first malformed service entry: a partial
        directory would route some labels to nowhere without telling anyone.
        Labels repeated across entries keep the endpoints of the last entry.
        """
        services = document.get("services") if isinstance(document, dict) else None
        if not services:
            raise BootstrapError("rdap services is empty")
        if not isinstance(services, list):
            raise BootstrapError(f"rdap services is not a list: {services!r}")

        routes: Dict[str, Tuple[str, ...]] = {}
        for service in services:
            if not isinstance(service, list) or len(service) != 2:
                raise BootstrapError(f"service is not a tuple. service {service!r}")
            labels, endpoints = service
            if not isinstance(labels, list) or not isinstance(endpoints, list):
                raise BootstrapError(f"service is not a tuple. service {service!r}")
            urls = tuple(str(url) for url in endpoints)
            for label in labels:
                routes[str(label)] = urls

        return cls(
            routes,
            description=document.get("description"),
            publication=document.get("publication"),
        )

    def lookup(self, label: str) -> Tuple[Tuple[str, ...], bool]:
        endpoints = self._routes.get(label)
        if endpoints is None:
            return (), False
        return endpoints, True

    def labels(self) -> List[str]:
        return sorted(self._routes)

    def __contains__(self, label: object) -> bool:
        return label in self._routes

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._routes)

    def __repr__(self) -> str:
        return f"RegistryDirectory(labels={len(self._routes)}, publication={self.publication!r})"


def fetch_bootstrap(url: str = IANA_DNS_BOOTSTRAP_URL, timeout: Optional[float] = None) -> Dict[str, Any]:
    """Download and decode the bootstrap document."""
    kwargs: Dict[str, Any] = {"headers": {"User-Agent": USER_AGENT}, "follow_redirects": True}
    if timeout is not None:
        kwargs["timeout"] = timeout
    try:
        response = httpx.get(url, **kwargs)
    except httpx.HTTPError as exc:
        raise BootstrapError(f"Cannot fetch bootstrap {url}: {exc.__class__.__name__}: {exc}") from exc
    if int(response.status_code) >= 400:
        raise BootstrapError(f"Cannot fetch bootstrap {url}: HTTP {response.status_code}")
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise BootstrapError(f"Invalid bootstrap document from {url}: {exc}") from exc


def load_directory(url: str = IANA_DNS_BOOTSTRAP_URL, timeout: Optional[float] = None) -> RegistryDirectory:
    logger.debug("Fetching RDAP bootstrap from %s", url)
    directory = RegistryDirectory.from_bootstrap(fetch_bootstrap(url, timeout=timeout))
    logger.info("Loaded %d RDAP routes (publication %s)", len(directory), directory.publication or "-")
    return directory
