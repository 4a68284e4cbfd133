import pytest

from adinsight.core.exceptions import SourceReadError
from adinsight.services.csv_ingest import ingest_csv, read_header
from conftest import HEADER, SAMPLE_CSV, write_csv


class TestIngestCsv:
    def test_records_are_handed_over_in_bounded_batches(self, tmp_path):
        rows = "".join(f"kw{i},100,5,2,4\n" for i in range(250))
        path = write_csv(tmp_path / "big.csv", HEADER + rows)
        batches = []

        result = ingest_csv(path, on_batch=batches.append, batch_size=100)

        assert [len(batch) for batch in batches] == [100, 100, 50]
        assert result.stats.valid_rows == 250
        assert batches[0][0]["row_number"] == 1
        assert batches[-1][-1]["row_number"] == 250

    def test_invalid_rows_are_counted_by_reason(self, tmp_path):
        content = (
            HEADER
            + "ok,100,5,2,4\n"
            + "bad-number,abc,5,2,4\n"
            + "negative,100,5,-2,4\n"
            + ",100,5,2,4\n"
        )
        path = write_csv(tmp_path / "mixed.csv", content)

        result = ingest_csv(path)

        assert result.stats.total_rows == 4
        assert result.stats.valid_rows == 1
        assert result.stats.discard_reasons == {
            "invalid_number": 1,
            "negative_value": 1,
            "missing_required": 1,
        }

    def test_record_payload_shape(self, tmp_path):
        path = write_csv(tmp_path / "sample.csv", SAMPLE_CSV)
        records = []

        ingest_csv(path, on_batch=records.extend)

        first = records[0]
        assert first["keyword"] == "a"
        assert first["metrics"] == {
            "calculated_ctr": pytest.approx(10.0),
            "calculated_cpc": pytest.approx(2.0),
            "calculated_cpm": pytest.approx(200.0),
            "calculated_roas": pytest.approx(3.0),
            "calculated_acos": pytest.approx(100 / 3),
            "calculated_conversion_rate": 0.0,
        }
        assert first["row_data"]["calculated_ctr"] == pytest.approx(10.0)

    def test_byte_order_mark_is_ignored(self, tmp_path):
        path = write_csv(tmp_path / "bom.csv", SAMPLE_CSV, encoding="utf-8-sig")

        assert read_header(path)[0] == "keyword"
        assert ingest_csv(path).stats.valid_rows == 2

    def test_ignored_columns_are_reported(self, tmp_path):
        content = "keyword,impressions,clicks,cost,Campaign Name\nshoes,10,1,1,Spring\n"
        path = write_csv(tmp_path / "extra.csv", content)

        result = ingest_csv(path)

        assert result.stats.ignored_columns == ["Campaign Name"]
        assert result.stats.valid_rows == 1

    def test_missing_file_raises_source_error(self, tmp_path):
        with pytest.raises(SourceReadError):
            ingest_csv(tmp_path / "nope.csv")

    def test_undecodable_file_raises_source_error(self, tmp_path):
        path = tmp_path / "binary.csv"
        path.write_bytes(b"keyword,impressions,clicks,cost\n\xff\xfe\xfa,1,1,1\n")

        with pytest.raises(SourceReadError):
            ingest_csv(path)

    def test_missing_required_headers_raise_source_error(self, tmp_path):
        path = write_csv(tmp_path / "headers.csv", "keyword,clicks\nshoes,1\n")

        with pytest.raises(SourceReadError, match="Missing required column"):
            ingest_csv(path)
