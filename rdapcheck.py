#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""Top-level executable shim.

Purpose:
- `python rdapcheck.py ...` command execution from a source checkout
"""

from rdapcheck.cli import run

if __name__ == "__main__":
    run()
