"""Unit tests for invoice_etl.csv_parser."""

import pytest

from invoice_etl.csv_parser import (
    EmptyFileError,
    MalformedRowError,
    ParseError,
    parse_csv_bytes,
    parse_csv_file,
    parse_csv_text,
)


class TestParseCsvText:
    def test_headers_and_rows(self):
        parsed = parse_csv_text("Full Name,Email\nAcme,a@x.com\nBeta,b@x.com\n")
        assert parsed.headers == ["Full Name", "Email"]
        assert parsed.rows == [
            {"Full Name": "Acme", "Email": "a@x.com"},
            {"Full Name": "Beta", "Email": "b@x.com"},
        ]

    def test_header_whitespace_trimmed(self):
        parsed = parse_csv_text(" Name , Email \nAcme,a@x.com\n")
        assert parsed.headers == ["Name", "Email"]

    def test_blank_lines_skipped(self):
        parsed = parse_csv_text("Name,Email\n\nAcme,a@x.com\n\n")
        assert len(parsed.rows) == 1

    def test_quoted_field_with_comma_and_newline(self):
        parsed = parse_csv_text('Name,Address\nAcme,"1 Main St,\nSuite 2"\n')
        assert parsed.rows[0]["Address"] == "1 Main St,\nSuite 2"

    def test_crlf_line_endings(self):
        parsed = parse_csv_text("Name,Email\r\nAcme,a@x.com\r\n")
        assert parsed.rows == [{"Name": "Acme", "Email": "a@x.com"}]

    def test_row_values_not_trimmed(self):
        parsed = parse_csv_text("Name,Email\n Acme ,a@x.com\n")
        assert parsed.rows[0]["Name"] == " Acme "


class TestParseFailures:
    def test_empty_text(self):
        with pytest.raises(EmptyFileError) as exc_info:
            parse_csv_text("")
        assert str(exc_info.value) == (
            "CSV file appears to be empty or could not be parsed correctly."
        )

    def test_header_only(self):
        with pytest.raises(EmptyFileError):
            parse_csv_text("Name,Email\n")

    def test_too_few_fields(self):
        with pytest.raises(MalformedRowError) as exc_info:
            parse_csv_text("Name,Email\nAcme\n")
        assert exc_info.value.line_number == 2
        assert str(exc_info.value).startswith("Error parsing row 2: Too few fields")

    def test_too_many_fields(self):
        with pytest.raises(MalformedRowError) as exc_info:
            parse_csv_text("Name,Email\nAcme,a@x.com,extra\n")
        assert "Too many fields" in str(exc_info.value)

    def test_bad_quoting(self):
        with pytest.raises(MalformedRowError):
            parse_csv_text('Name,Email\nAcme,"a@x.com"junk\n')

    def test_duplicate_header(self):
        with pytest.raises(MalformedRowError):
            parse_csv_text("Email,Email\na@x.com,b@x.com\n")

    def test_parse_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            parse_csv_text("")


class TestParseCsvBytes:
    def test_utf8_bom_dropped(self):
        parsed = parse_csv_bytes("\ufeffName,Email\nAcme,a@x.com\n".encode("utf-8"))
        assert parsed.headers == ["Name", "Email"]

    def test_undecodable_bytes(self):
        with pytest.raises(ParseError):
            parse_csv_bytes(b"Name\n\xff\xfe\xfa\n")

    def test_from_file(self, tmp_path):
        path = tmp_path / "clients.csv"
        path.write_text("Name,Email\nAcme,a@x.com\n", encoding="utf-8")
        assert parse_csv_file(path).rows == [{"Name": "Acme", "Email": "a@x.com"}]
