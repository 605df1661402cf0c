from __future__ import annotations

import csv
import os
from typing import IO, Any, Dict, Iterable, List


def ensure_dir(path: str) -> None:
    if path:
        os.makedirs(path, exist_ok=True)


def write_csv_stream(fh: IO[str], rows: Iterable[Dict[str, Any]], fieldnames: List[str]) -> int:
    """Write rows as CSV to an open text stream. Normalizes newlines in string values."""
    w = csv.DictWriter(fh, fieldnames=fieldnames, extrasaction="ignore")
    w.writeheader()
    count = 0
    for row in rows:
        fixed = {
            k: (v.replace("\r\n", "\n").replace("\r", "\n") if isinstance(v, str) else v)
            for k, v in row.items()
        }
        w.writerow(fixed)
        count += 1
    return count


def write_csv(path: str, rows: Iterable[Dict[str, Any]], fieldnames: List[str]) -> int:
    """Write rows to a CSV file, creating its directory. Returns row count."""
    ensure_dir(os.path.dirname(path))
    with open(path, "w", newline="", encoding="utf-8") as f:
        return write_csv_stream(f, rows, fieldnames)


def split_csv_option(value: str | None) -> List[str]:
    """'Id, Name,,Owner.Name' -> ['Id', 'Name', 'Owner.Name']"""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]
