"""
Recipient files for the command line.

:class:`RecipientFile` is a lazy, restartable source of ``{"address",
"amount"}`` rows: each iteration re-opens the file. Amounts are passed on as
text exactly as written, so nothing is rounded before validation.

CSV:
    Address,Amount[,Label]
    0x1111111111111111111111111111111111111111,10.5,Alice
    0x2222222222222222222222222222222222222222,5,Bob

JSON:
    [
        {"address": "0x1111...", "amount": "10.5", "label": "Alice"},
        {"address": "0x2222...", "amount": 5}
    ]
"""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Iterator

from spraay_batch.errors import ValidationError


def iter_recipients_csv(filepath: str | Path) -> Iterator[dict[str, str]]:
    """Yield rows from a CSV file with an ``address,amount`` header (any case)."""
    filepath = Path(filepath)
    with open(filepath, "r", newline="") as f:
        reader = csv.DictReader(f)

        if reader.fieldnames is None:
            raise ValidationError(f"{filepath}: CSV file is empty or has no headers")

        headers = {h.strip().lower() for h in reader.fieldnames if h}
        missing = {"address", "amount"} - headers
        if missing:
            raise ValidationError(
                f"{filepath}: missing column(s) {', '.join(sorted(missing))}"
            )

        for row in reader:
            normalized = {
                k.strip().lower(): (v or "").strip() for k, v in row.items() if k
            }
            if not any(normalized.values()):
                continue
            yield {
                "address": normalized.get("address", ""),
                "amount": normalized.get("amount", ""),
                "label": normalized.get("label", normalized.get("name", "")),
            }


def iter_recipients_json(filepath: str | Path) -> Iterator[dict[str, str]]:
    """Yield rows from a JSON list of recipient objects."""
    filepath = Path(filepath)
    with open(filepath, "r") as f:
        try:
            # Numbers stay text; a float would already have lost digits.
            data = json.load(f, parse_float=str, parse_int=str)
        except json.JSONDecodeError as e:
            raise ValidationError(f"{filepath}: invalid JSON ({e})") from e

    if not isinstance(data, list):
        raise ValidationError("JSON must contain a list of recipient objects")

    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ValidationError(f"Entry {i}: must be an object")
        if "address" not in entry:
            raise ValidationError(f"Entry {i}: missing 'address' field")
        if "amount" not in entry:
            raise ValidationError(f"Entry {i}: missing 'amount' field")

        yield {
            "address": str(entry["address"]).strip(),
            "amount": str(entry["amount"]).strip(),
            "label": str(entry.get("label", "")),
        }


class RecipientFile:
    """Restartable recipient source backed by a CSV or JSON file."""

    def __init__(self, filepath: str | Path):
        self.filepath = Path(filepath)
        suffix = self.filepath.suffix.lower()
        if suffix == ".json":
            self._reader = iter_recipients_json
        elif suffix in (".csv", ".txt", ""):
            self._reader = iter_recipients_csv
        else:
            raise ValidationError(f"Unsupported recipient file type: {suffix}")

    def __iter__(self) -> Iterator[dict[str, str]]:
        return self._reader(self.filepath)


def write_recipients_csv(filepath: str | Path, csv_text: str) -> Path:
    """Write an exported ``Address,Amount`` document to disk."""
    filepath = Path(filepath)
    with open(filepath, "w", newline="") as f:
        f.write(csv_text)
    return filepath
