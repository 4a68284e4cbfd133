"""Validate CSV headers and enforce per-row field constraints."""

from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Raised when a CSV header row cannot be used."""

    pass


class RowValidationError(ValueError):
    """Raised when a single row is rejected; ``reason`` is the counter key."""

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        super().__init__(message)


SUPPORTED_COLUMNS = (
    "keyword",
    "search_term",
    "impressions",
    "clicks",
    "cost",
    "sales",
    "conversions",
    "acos",
    "roas",
    "ctr",
    "cpc",
    "cpm",
    "product_targets",
    "added_as",
    "orders",
)
NUMERIC_FIELDS = (
    "impressions",
    "clicks",
    "cost",
    "sales",
    "conversions",
    "acos",
    "roas",
    "ctr",
    "cpc",
    "cpm",
    "orders",
)
TEXT_FIELDS = tuple(c for c in SUPPORTED_COLUMNS if c not in NUMERIC_FIELDS)
REQUIRED_FIELDS = ("keyword", "impressions", "clicks", "cost")

# Keys are already normalized (lower-case, whitespace collapsed to "_")
HEADER_ALIASES = {
    "matched_product": "keyword",
    "targeting": "keyword",
    "customer_search_term": "search_term",
    "spend": "cost",
    "spend(usd)": "cost",
    "spend_(usd)": "cost",
    "sales(usd)": "sales",
    "sales_(usd)": "sales",
    "cpc(usd)": "cpc",
    "cpc_(usd)": "cpc",
    "7_day_total_orders_(#)": "conversions",
    "7_day_total_sales": "sales",
    "7_day_total_sales_(usd)": "sales",
    "cost_per_click_(cpc)": "cpc",
    "click-thru_rate_(ctr)": "ctr",
    "total_advertising_cost_of_sales_(acos)": "acos",
    "total_return_on_advertising_spend_(roas)": "roas",
}

MAX_VOLUME = 1_000_000

_WHITESPACE = re.compile(r"\s+")
_NUMBER_DECORATION = re.compile(r"[$,%\s]")


def normalize_header(header: str) -> str:
    """Map a raw header to its canonical column name (may be unsupported)."""
    key = _WHITESPACE.sub("_", (header or "").strip().lower())
    return HEADER_ALIASES.get(key, key)


def build_header_map(headers: list[str]) -> tuple[dict[str, str], list[str]]:
    """Return ``{raw header: canonical column}`` plus the ignored raw headers.

    The first raw header that maps onto a canonical column wins; later
    duplicates are ignored.
    """
    mapping: dict[str, str] = {}
    ignored: list[str] = []
    seen: set[str] = set()
    for raw in headers:
        column = normalize_header(raw)
        if column in SUPPORTED_COLUMNS and column not in seen:
            mapping[raw] = column
            seen.add(column)
        elif column in seen:
            ignored.append(raw)
            logger.warning(
                f"Column '{raw}' also maps to '{column}', which an earlier column already provides; it will be ignored"
            )
        else:
            ignored.append(raw)
            logger.warning(
                f"Column '{raw}' (normalized to '{column}') is not a supported column and will be ignored"
            )
    return mapping, ignored


def validate_headers(headers: list[str] | None) -> None:
    """Ensure CSV contains the required columns before processing."""
    if not headers:
        raise ValidationError(
            f"CSV requires a header row with {','.join(REQUIRED_FIELDS)} columns"
        )
    normalized = {normalize_header(header) for header in headers}
    missing = [field for field in REQUIRED_FIELDS if field not in normalized]
    if missing:
        raise ValidationError(f"Missing required column(s): {', '.join(missing)}")


def clean_value(value: Any) -> str | None:
    """Trim a raw cell; empty cells become ``None``."""
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def parse_number(value: str) -> float:
    """Parse a numeric cell, tolerating ``$``, ``,`` and ``%`` decoration."""
    stripped = _NUMBER_DECORATION.sub("", value)
    if not stripped:
        raise ValueError(f"'{value}' is not a number")
    number = float(stripped)
    if number != number or number in (float("inf"), float("-inf")):
        raise ValueError(f"'{value}' is not a finite number")
    return number


def normalize_row(
    row: dict[str, Any],
    row_number: int,
    header_map: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Clean one raw CSV row into a validated record.

    Raises ``RowValidationError`` with a reason code when the row must be
    discarded. Derived metrics are not computed here.
    """
    if header_map is None:
        header_map, _ = build_header_map(list(row.keys()))

    cleaned: dict[str, Any] = {}
    for raw_key, column in header_map.items():
        value = clean_value(row.get(raw_key))
        if value is None:
            continue
        if column in NUMERIC_FIELDS:
            try:
                cleaned[column] = parse_number(value)
            except ValueError:
                raise RowValidationError(
                    "invalid_number",
                    f"Row {row_number}: field '{column}' has non-numeric value '{value}'",
                ) from None
        else:
            cleaned[column] = value

    for field in NUMERIC_FIELDS:
        if field not in REQUIRED_FIELDS and field not in cleaned:
            cleaned[field] = 0.0

    missing = [field for field in REQUIRED_FIELDS if field not in cleaned]
    if missing:
        raise RowValidationError(
            "missing_required",
            f"Row {row_number}: missing required field(s) {', '.join(missing)}",
        )

    for field in NUMERIC_FIELDS:
        if cleaned[field] < 0:
            raise RowValidationError(
                "negative_value",
                f"Row {row_number}: field '{field}' has negative value ({cleaned[field]})",
            )

    if cleaned["clicks"] > cleaned["impressions"]:
        raise RowValidationError(
            "clicks_exceed_impressions",
            f"Row {row_number}: clicks ({cleaned['clicks']}) exceed impressions ({cleaned['impressions']})",
        )

    if cleaned["impressions"] > MAX_VOLUME or cleaned["clicks"] > MAX_VOLUME:
        raise RowValidationError(
            "outlier",
            f"Row {row_number}: impressions or clicks are extremely high "
            f"(impressions: {cleaned['impressions']}, clicks: {cleaned['clicks']})",
        )

    return cleaned
