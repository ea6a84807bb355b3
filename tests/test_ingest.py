import pytest

from bizintel.errors import InvalidInputError, MalformedInputError
from bizintel.ingest import parse_csv, parse_csv_file


def test_rows_follow_header_and_source_order(scenario_csv) -> None:
    rows = parse_csv(scenario_csv)
    assert rows == [
        {"Date": "2024-01-01", "Revenue": "100.50", "Category": "A"},
        {"Date": "2024-01-02", "Revenue": "200", "Category": "B"},
    ]


def test_row_count_ignores_blank_trailing_lines() -> None:
    text = "a,b\n1,2\n3,4\n5,6\n\n\n"
    assert len(parse_csv(text)) == 3


def test_cells_stay_raw_strings() -> None:
    rows = parse_csv('code,amount,note\n007,"1,000",NA\n')
    assert rows[0] == {"code": "007", "amount": "1,000", "note": "NA"}


def test_short_rows_are_padded_with_empty_strings() -> None:
    rows = parse_csv("a,b,c\n1,2\n")
    assert rows[0]["c"] == ""


def test_header_only_is_malformed_input() -> None:
    with pytest.raises(MalformedInputError):
        parse_csv("Date,Revenue,Category\n")


def test_empty_text_is_invalid_input() -> None:
    with pytest.raises(InvalidInputError):
        parse_csv(b"")


def test_bytes_are_decoded_with_fallback_encodings() -> None:
    rows = parse_csv(b"\xef\xbb\xbfname,city\nAna,Bogot\xc3\xa1\n")
    assert rows == [{"name": "Ana", "city": "Bogotá"}]

    rows = parse_csv("name,drink\nLou,café\n".encode("cp1252"))
    assert rows[0]["drink"] == "café"


def test_parse_csv_file(tmp_path) -> None:
    path = tmp_path / "sales.csv"
    path.write_text("region,total\nNorth,10\nSouth,12\n", encoding="utf-8")
    assert [row["region"] for row in parse_csv_file(path)] == ["North", "South"]


def test_bytes_undefined_in_cp1252_fall_back_to_latin_1() -> None:
    rows = parse_csv(b"sku,label\nA1,\x81box\n")
    assert rows == [{"sku": "A1", "label": "\x81box"}]
