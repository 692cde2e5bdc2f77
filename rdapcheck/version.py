"""Version helpers for rdapcheck."""

from __future__ import annotations

__version__ = "1.0.0"
PYPI_PROJECT = "rdapcheck"
USER_AGENT = f"{PYPI_PROJECT}/{__version__}"
