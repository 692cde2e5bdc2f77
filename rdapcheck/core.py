from __future__ import annotations

"""Compatibility facade for the rdapcheck engine.

Public imports remain stable while implementation lives in `rdapcheck.engine`.
"""

from .engine.bootstrap import (
    IANA_DNS_BOOTSTRAP_URL,
    BootstrapError,
    RegistryDirectory,
    fetch_bootstrap,
    load_directory,
)
from .engine.runtime import (
    DEFAULT_CONCURRENCY,
    NO_PROVIDER_MESSAGE,
    LookupOutcome,
    OutcomeKind,
    WorkQueue,
    _run_coro_sync,
    build_client,
    check_domains,
    classify_status,
    dispatch,
    feed,
    fmt_td,
    logger,
    lookup_domain,
    rdap_lookup_url,
    top_level_label,
)

__all__ = [
    "IANA_DNS_BOOTSTRAP_URL",
    "DEFAULT_CONCURRENCY",
    "NO_PROVIDER_MESSAGE",
    "BootstrapError",
    "RegistryDirectory",
    "LookupOutcome",
    "OutcomeKind",
    "WorkQueue",
    "build_client",
    "check_domains",
    "classify_status",
    "dispatch",
    "feed",
    "fetch_bootstrap",
    "fmt_td",
    "load_directory",
    "logger",
    "lookup_domain",
    "rdap_lookup_url",
    "top_level_label",
    "_run_coro_sync",
]
