"""Public package surface for rdapcheck.

Importing `rdapcheck` exposes the high-level API (`check_domains`,
`load_directory`, `dispatch`) and package version, keeping internals hidden by
default.
"""

from .core import (
    BootstrapError,
    LookupOutcome,
    OutcomeKind,
    RegistryDirectory,
    check_domains,
    dispatch,
    load_directory,
)
from .version import __version__

__all__ = [
    "__version__",
    "BootstrapError",
    "LookupOutcome",
    "OutcomeKind",
    "RegistryDirectory",
    "check_domains",
    "dispatch",
    "load_directory",
]
