from __future__ import annotations

"""Runtime defaults for rdapcheck.

Values come from the environment, optionally populated from a `.env` file.
CLI options override anything returned here.
"""

import os
from typing import Mapping, Optional

from dotenv import load_dotenv

from .engine.bootstrap import IANA_DNS_BOOTSTRAP_URL
from .engine.runtime import DEFAULT_CONCURRENCY

ENV_CONCURRENCY = "RDAPCHECK_CONCURRENCY"
ENV_TIMEOUT = "RDAPCHECK_TIMEOUT"
ENV_BOOTSTRAP_URL = "RDAPCHECK_BOOTSTRAP_URL"


def _normalize_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()
    return text if text else None


def load_runtime_settings(environ: Optional[Mapping[str, str]] = None) -> dict:
    if environ is None:
        load_dotenv()
        environ = os.environ

    def _parse_float(value: Optional[str]) -> Optional[float]:
        if value is None:
            return None
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if parsed > 0 else None

    def _parse_int(value: Optional[str]) -> Optional[int]:
        if value is None or value == "":
            return None
        try:
            parsed = int(value)
        except ValueError:
            return None
        return parsed if parsed >= 1 else None

    return {
        "concurrency": _parse_int(_normalize_optional(environ.get(ENV_CONCURRENCY))) or DEFAULT_CONCURRENCY,
        "timeout": _parse_float(_normalize_optional(environ.get(ENV_TIMEOUT))),
        "bootstrap_url": _normalize_optional(environ.get(ENV_BOOTSTRAP_URL)) or IANA_DNS_BOOTSTRAP_URL,
    }
