"""Business logic for streaming CSV ingestion into validated records."""

from __future__ import annotations

import csv
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator

from adinsight.core.exceptions import SourceReadError
from adinsight.services.metrics_engine import (
    DEFAULT_TOP_N,
    MetricsAccumulator,
    enrich_record,
)
from adinsight.utils.csv_validator import (
    RowValidationError,
    ValidationError,
    build_header_map,
    normalize_row,
    validate_headers,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100

BatchHandler = Callable[[list[dict[str, Any]]], None]


@dataclass
class IngestStats:
    total_rows: int = 0
    valid_rows: int = 0
    discarded_rows: int = 0
    discard_reasons: Counter = field(default_factory=Counter)
    headers: list[str] = field(default_factory=list)
    ignored_columns: list[str] = field(default_factory=list)


@dataclass
class IngestResult:
    stats: IngestStats
    analysis: dict[str, Any]


def _open(path: Path):
    return path.open("r", encoding="utf-8-sig", newline="")


def read_header(file_path: Path) -> list[str]:
    """Return the header row of a CSV, raising ``SourceReadError`` if unreadable."""
    try:
        with _open(file_path) as handle:
            reader = csv.reader(handle)
            return next(reader, [])
    except FileNotFoundError:
        raise SourceReadError(f"CSV file not found: {file_path}", str(file_path))
    except PermissionError:
        raise SourceReadError(f"Permission denied reading file: {file_path}", str(file_path))
    except UnicodeDecodeError as e:
        raise SourceReadError(f"File encoding error: {str(e)}", str(file_path)) from e
    except csv.Error as e:
        raise SourceReadError(f"CSV parsing error: {str(e)}", str(file_path)) from e


def read_rows(file_path: Path) -> Iterator[tuple[int, dict[str, Any], list[str]]]:
    """Yield ``(row_number, raw_row, headers)`` one row at a time.

    Row numbers start at 1 for the first data row.
    """
    try:
        with _open(file_path) as handle:
            reader = csv.DictReader(handle)
            headers = list(reader.fieldnames or [])
            for row_number, row in enumerate(reader, start=1):
                yield row_number, row, headers
    except FileNotFoundError:
        raise SourceReadError(f"CSV file not found: {file_path}", str(file_path))
    except PermissionError:
        raise SourceReadError(f"Permission denied reading file: {file_path}", str(file_path))
    except UnicodeDecodeError as e:
        raise SourceReadError(f"File encoding error: {str(e)}", str(file_path)) from e
    except csv.Error as e:
        raise SourceReadError(f"CSV parsing error: {str(e)}", str(file_path)) from e


def ingest_csv(
    file_path: Path,
    on_batch: BatchHandler | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    top_n: int = DEFAULT_TOP_N,
) -> IngestResult:
    """Validate, enrich and aggregate every row of a CSV file.

    Valid records are handed to ``on_batch`` in batches of ``batch_size`` as
    ``{"row_number", "keyword", "row_data", "metrics"}`` dicts. Invalid rows
    are logged, counted by reason and skipped.
    """
    file_path = Path(file_path)
    stats = IngestStats()
    accumulator = MetricsAccumulator(top_n=top_n)
    header_map: dict[str, str] | None = None
    batch: list[dict[str, Any]] = []

    for row_number, row, headers in read_rows(file_path):
        if header_map is None:
            try:
                validate_headers(headers)
            except ValidationError as e:
                raise SourceReadError(f"Invalid CSV headers: {str(e)}", str(file_path)) from e
            stats.headers = headers
            header_map, stats.ignored_columns = build_header_map(headers)

        stats.total_rows += 1
        try:
            cleaned = normalize_row(row, row_number, header_map)
        except RowValidationError as e:
            stats.discarded_rows += 1
            stats.discard_reasons[e.reason] += 1
            logger.warning(f"{e} - row skipped")
            continue

        record, metrics = enrich_record(cleaned)
        stats.valid_rows += 1
        accumulator.add(record)
        batch.append(
            {
                "row_number": row_number,
                "keyword": record["keyword"],
                "row_data": record,
                "metrics": metrics,
            }
        )
        if len(batch) >= batch_size:
            if on_batch is not None:
                on_batch(batch)
            batch = []

    if batch and on_batch is not None:
        on_batch(batch)

    logger.info(
        f"CSV processing completed for {file_path.name}: {stats.total_rows} rows, "
        f"{stats.valid_rows} valid, {stats.discarded_rows} discarded"
    )
    return IngestResult(stats=stats, analysis=accumulator.result())
