"""Parsers for the output of ``kaggle kernels list``."""

from __future__ import annotations

import csv
import io
import re

_WHITESPACE = re.compile(r"\s+")
_RULER = re.compile(r"^[-\s]+$")


def _split_columns(line: str) -> list[str]:
    return _WHITESPACE.split(line.strip())


def parse_table(text: str) -> list[dict[str, str]]:
    """Parse a whitespace-aligned text table into one mapping per row.

    The first line holds the column headers. Every following line is split on
    runs of whitespace and zipped positionally with the headers; missing
    trailing values become empty strings. Values that themselves contain
    whitespace shift into the next column. Blank lines and dash rulers are
    skipped.
    """

    lines = [line for line in text.strip().splitlines() if line.strip()]
    if len(lines) < 2:
        return []

    headers = _split_columns(lines[0])
    records: list[dict[str, str]] = []
    for line in lines[1:]:
        if _RULER.match(line):
            continue
        values = _split_columns(line)
        records.append(
            {header: values[index] if index < len(values) else "" for index, header in enumerate(headers)}
        )
    return records


def parse_csv(text: str) -> list[dict[str, str]]:
    """Parse the ``--csv`` listing output into one mapping per row."""

    stripped = text.strip()
    if not stripped:
        return []
    reader = csv.DictReader(io.StringIO(stripped))
    return [
        {header: (row.get(header) or "") for header in reader.fieldnames or ()}
        for row in reader
    ]


PARSERS = {
    "table": parse_table,
    "csv": parse_csv,
}
