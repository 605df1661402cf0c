"""Entry point for ``python -m sfpull`` and the ``sfpull`` console script."""

from __future__ import annotations

import sys
from typing import List, Optional

from .cli import cli


def _utf8_stdio() -> None:
    # record values carry arbitrary unicode; never fail a CSV on a cp1252 console
    for stream in (sys.stdout, sys.stderr):
        if hasattr(stream, "reconfigure"):
            stream.reconfigure(encoding="utf-8", errors="backslashreplace")


def main(argv: Optional[List[str]] = None) -> None:
    _utf8_stdio()
    cli.main(args=argv, prog_name="sfpull")


if __name__ == "__main__":
    main()
