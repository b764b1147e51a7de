"""
CSV bulk-row format used to import and export batches.
"""

from __future__ import annotations

import csv
import io
import typing as t
from dataclasses import dataclass, field

from genbatch.exceptions import RowParseError
from genbatch.models import JobRecord

COLUMNS = (
    "id",
    "prompt",
    "image_url",
    "ratio",
    "seed",
    "watermark",
    "callback_url",
    "translate",
    "fallback_model",
    "note",
)

_COLUMN_ALIASES = {
    "imageurl": "image_url",
    "image": "image_url",
    "aspect_ratio": "ratio",
    "aspectratio": "ratio",
    "callback": "callback_url",
    "callbackurl": "callback_url",
    "fallback": "fallback_model",
}

# columns kept in the extra bag rather than as job input fields
_EXTRA_COLUMNS = ("fallback_model", "note")


@dataclass(frozen=True)
class BulkRow:
    """One row of a bulk import, before preset defaults are applied."""

    id: str
    prompt: str = ""
    image_url: str | None = None
    ratio: str | None = None
    seed: int | None = None
    watermark: str | None = None
    callback_url: str | None = None
    translate: str | None = None
    extra: dict[str, t.Any] = field(default_factory=dict)


def normalize_header(header: str) -> str | None:
    """
    Map a CSV header to a known column.

    Parameters
    ----------
    header : str
        Raw header cell.

    Returns
    -------
    str | None
        Canonical column name, ``None`` for unknown headers.
    """
    normalized = header.strip().lower()
    if normalized in COLUMNS:
        return normalized
    return _COLUMN_ALIASES.get(normalized)


def parse_rows(text: str) -> list[BulkRow]:
    """
    Parse CSV text into bulk rows.

    Parameters
    ----------
    text : str
        CSV content with a header line.

    Returns
    -------
    list[BulkRow]
        One row per non-empty data line. Rows without id are named ``row_<n>``.

    Raises
    ------
    RowParseError
        If a seed is not an integer.
    """
    lines = [row for row in csv.reader(io.StringIO(text.lstrip("\ufeff"))) if any(row)]
    if len(lines) <= 1:
        return []

    header_row = lines[0]
    column_map = [normalize_header(header) for header in header_row]
    rows: list[BulkRow] = []
    for row_index, cells in enumerate(lines[1:], start=1):
        values: dict[str, t.Any] = {}
        extra: dict[str, t.Any] = {}
        for column_index, original_header in enumerate(header_row):
            value = cells[column_index].strip() if column_index < len(cells) else ""
            column = column_map[column_index]
            if column is None:
                extra[original_header] = value
            elif column in _EXTRA_COLUMNS:
                if value:
                    extra[column] = value
            elif column == "seed":
                values["seed"] = _parse_seed(value=value, row_index=row_index)
            elif value:
                values[column] = value
        values.setdefault("id", f"row_{row_index}")
        rows.append(BulkRow(extra=extra, **values))
    return rows


def _parse_seed(*, value: str, row_index: int) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError as error:
        raise RowParseError(f"Row {row_index}: seed '{value}' is not an integer") from error


def serialize_rows(rows: t.Iterable[BulkRow]) -> str:
    """
    Serialize bulk rows to CSV with the fixed column set.

    Parameters
    ----------
    rows : typing.Iterable[BulkRow]
        Rows to write.

    Returns
    -------
    str
        CSV text including the header line.
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=COLUMNS, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow(
            {
                "id": row.id,
                "prompt": row.prompt,
                "image_url": row.image_url or "",
                "ratio": row.ratio or "",
                "seed": "" if row.seed is None else row.seed,
                "watermark": row.watermark or "",
                "callback_url": row.callback_url or "",
                "translate": row.translate or "",
                "fallback_model": row.extra.get("fallback_model") or "",
                "note": row.extra.get("note") or "",
            }
        )
    return buffer.getvalue()


def row_from_record(record: JobRecord) -> BulkRow:
    """Project a job record back onto the bulk-row shape."""
    job_input = record.input
    return BulkRow(
        id=record.id,
        prompt=job_input.prompt,
        image_url=job_input.image_url,
        ratio=job_input.ratio,
        seed=job_input.seed,
        watermark=job_input.watermark,
        callback_url=job_input.callback_url,
        translate=job_input.translate,
        extra=dict(job_input.extra),
    )
