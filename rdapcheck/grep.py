from __future__ import annotations

"""Extract domain names from comma-separated text lines.

`rdapcheck-grep -f export.csv | rdapcheck -f -` turns a spreadsheet export
into lookup input: for every line, the first comma-separated field that looks
like a lowercase `name.tld` domain is printed.
"""

import argparse
import re
import sys
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from .output import err_console

DOMAIN_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*\.[a-z]{2,}$")


def find_domain(line: str) -> Optional[str]:
    for word in line.split(","):
        if DOMAIN_RE.match(word):
            return word
    return None


def extract_domains(lines: Iterable[str]) -> Iterator[str]:
    for line in lines:
        domain = find_domain(line.rstrip("\r\n"))
        if domain:
            yield domain


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="rdapcheck-grep",
        description="Print the first domain-looking field of each line.",
    )
    parser.add_argument("-f", "--file", help="File containing domains, one record per line.")
    args = parser.parse_args(argv)

    if not args.file:
        parser.print_help(sys.stderr)
        sys.exit(1)

    try:
        with Path(args.file).open("r", encoding="utf-8") as fh:
            for domain in extract_domains(fh):
                sys.stdout.write(f"{domain}\n")
    except BrokenPipeError:
        return
    except OSError as exc:
        err_console.print(f"[red]Cannot read file:[/red] {args.file} ({exc})")
        sys.exit(1)


if __name__ == "__main__":
    main()
