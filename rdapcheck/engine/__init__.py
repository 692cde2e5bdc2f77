"""RDAP bootstrap and bounded lookup engine."""
