from __future__ import annotations

from rdapcheck.core import DEFAULT_CONCURRENCY, IANA_DNS_BOOTSTRAP_URL
from rdapcheck.settings import load_runtime_settings


def test_defaults_when_environment_is_empty():
    assert load_runtime_settings({}) == {
        "concurrency": DEFAULT_CONCURRENCY,
        "timeout": None,
        "bootstrap_url": IANA_DNS_BOOTSTRAP_URL,
    }


def test_environment_values_are_parsed():
    settings = load_runtime_settings(
        {
            "RDAPCHECK_CONCURRENCY": "32",
            "RDAPCHECK_TIMEOUT": " 2.5 ",
            "RDAPCHECK_BOOTSTRAP_URL": "http://mirror.test/dns.json",
        }
    )
    assert settings == {"concurrency": 32, "timeout": 2.5, "bootstrap_url": "http://mirror.test/dns.json"}


def test_invalid_values_fall_back_to_defaults():
    settings = load_runtime_settings(
        {"RDAPCHECK_CONCURRENCY": "0", "RDAPCHECK_TIMEOUT": "soon", "RDAPCHECK_BOOTSTRAP_URL": "   "}
    )
    assert settings["concurrency"] == DEFAULT_CONCURRENCY
    assert settings["timeout"] is None
    assert settings["bootstrap_url"] == IANA_DNS_BOOTSTRAP_URL
