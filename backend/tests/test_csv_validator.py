import pytest

from adinsight.utils.csv_validator import (
    RowValidationError,
    ValidationError,
    build_header_map,
    normalize_header,
    normalize_row,
    parse_number,
    validate_headers,
)


class TestHeaders:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Keyword", "keyword"),
            ("  Impressions ", "impressions"),
            ("Search Term", "search_term"),
            ("Spend (USD)", "cost"),
            ("Matched product", "keyword"),
            ("Sales (USD)", "sales"),
            ("CPC (USD)", "cpc"),
            ("7 Day Total Orders (#)", "conversions"),
            ("Customer Search Term", "search_term"),
        ],
    )
    def test_normalize_header_applies_aliases(self, raw, expected):
        assert normalize_header(raw) == expected

    def test_validate_headers_accepts_aliased_required_columns(self):
        validate_headers(["Matched product", "Impressions", "Clicks", "Spend (USD)"])

    def test_validate_headers_reports_missing_columns(self):
        with pytest.raises(ValidationError, match="clicks, cost"):
            validate_headers(["keyword", "impressions"])

    def test_validate_headers_requires_header_row(self):
        with pytest.raises(ValidationError):
            validate_headers([])

    def test_unsupported_columns_are_ignored(self):
        mapping, ignored = build_header_map(["keyword", "Campaign Name", "clicks"])
        assert mapping == {"keyword": "keyword", "clicks": "clicks"}
        assert ignored == ["Campaign Name"]

    def test_second_alias_for_a_column_is_reported_as_duplicate(self, caplog):
        with caplog.at_level("WARNING", logger="adinsight.utils.csv_validator"):
            mapping, ignored = build_header_map(["keyword", "Cost", "Spend"])

        assert mapping == {"keyword": "keyword", "Cost": "cost"}
        assert ignored == ["Spend"]
        assert "also maps to 'cost'" in caplog.text
        assert "not a supported column" not in caplog.text


class TestParseNumber:
    @pytest.mark.parametrize(
        "raw,expected",
        [("42", 42.0), ("$1,234.50", 1234.5), ("12.5%", 12.5), (" 7 ", 7.0)],
    )
    def test_decorations_are_stripped(self, raw, expected):
        assert parse_number(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "$", "nan", "1.2.3"])
    def test_non_numbers_raise(self, raw):
        with pytest.raises(ValueError):
            parse_number(raw)


class TestNormalizeRow:
    def test_valid_row_is_coerced_and_defaults_filled(self):
        row = {"keyword": " shoes ", "impressions": "1,000", "clicks": "25", "cost": "$12.50"}

        cleaned = normalize_row(row, 1)

        assert cleaned["keyword"] == "shoes"
        assert cleaned["impressions"] == 1000.0
        assert cleaned["cost"] == 12.5
        assert cleaned["sales"] == 0.0
        assert cleaned["conversions"] == 0.0

    def test_non_numeric_value_rejects_row(self):
        row = {"keyword": "shoes", "impressions": "lots", "clicks": "1", "cost": "1"}
        with pytest.raises(RowValidationError) as exc_info:
            normalize_row(row, 3)
        assert exc_info.value.reason == "invalid_number"

    def test_missing_required_field_rejects_row(self):
        row = {"keyword": "shoes", "impressions": "10", "clicks": "1", "cost": ""}
        with pytest.raises(RowValidationError) as exc_info:
            normalize_row(row, 2)
        assert exc_info.value.reason == "missing_required"

    def test_negative_value_rejects_row(self):
        row = {"keyword": "shoes", "impressions": "10", "clicks": "1", "cost": "-4"}
        with pytest.raises(RowValidationError) as exc_info:
            normalize_row(row, 2)
        assert exc_info.value.reason == "negative_value"

    def test_clicks_above_impressions_is_discarded_not_clamped(self):
        row = {"keyword": "shoes", "impressions": "5", "clicks": "10", "cost": "1"}
        with pytest.raises(RowValidationError) as exc_info:
            normalize_row(row, 2)
        assert exc_info.value.reason == "clicks_exceed_impressions"

    def test_outlier_volume_rejects_row(self):
        row = {"keyword": "shoes", "impressions": "2000000", "clicks": "10", "cost": "1"}
        with pytest.raises(RowValidationError) as exc_info:
            normalize_row(row, 2)
        assert exc_info.value.reason == "outlier"

    def test_aliased_headers_map_onto_columns(self):
        row = {
            "Matched product": "boots",
            "Impressions": "100",
            "Clicks": "4",
            "Spend (USD)": "8",
            "7 Day Total Orders (#)": "2",
        }

        cleaned = normalize_row(row, 1)

        assert cleaned["keyword"] == "boots"
        assert cleaned["cost"] == 8.0
        assert cleaned["conversions"] == 2.0
