"""Unit tests for phone, JSON and content-type helpers."""

import pytest

from docflow.utils.file_detection import IMAGE, PDF, file_kind, resolve_content_type, sniff_content_type
from docflow.utils.json_parser import extract_json_object, parse_json_safely
from docflow.utils.phone import digits_only, normalize_phone


class TestPhone:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("+353 87 123 4567", "353871234567"),
            ("00353871234567", "353871234567"),
            ("  087 123 4567 ", "0871234567"),
            ("", None),
            ("   ", None),
            (None, None),
        ],
    )
    def test_normalize_phone(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_digits_only_strips_everything_else(self):
        assert digits_only("+353 (87) 123-4567") == "353871234567"
        assert digits_only(None) == ""


class TestJsonParser:
    def test_plain_json(self):
        assert parse_json_safely('{"a": 1}') == {"a": 1}

    def test_fenced_block_with_commentary(self):
        text = 'Here you go:\n```json\n{"classification": "gas"}\n```\nThanks'
        assert extract_json_object(text) == {"classification": "gas"}

    def test_concatenated_objects_are_merged(self):
        text = 'prefix {"a": 1} {"b": 2} suffix'
        assert parse_json_safely(text) == {"a": 1, "b": 2}

    def test_garbage_returns_none(self):
        assert parse_json_safely("no json here") is None
        assert parse_json_safely("") is None

    def test_extract_json_object_rejects_arrays(self):
        assert extract_json_object("[1, 2, 3]") is None


class TestFileDetection:
    def test_sniff_pdf_and_png(self, sample_pdf_content, sample_png_content):
        assert sniff_content_type(sample_pdf_content) == "application/pdf"
        assert sniff_content_type(sample_png_content) == "image/png"
        assert sniff_content_type(b"hello") is None

    def test_declared_type_wins_unless_generic(self, sample_pdf_content):
        assert resolve_content_type("image/jpeg; charset=binary", sample_pdf_content) == "image/jpeg"
        assert resolve_content_type("application/octet-stream", sample_pdf_content) == "application/pdf"

    def test_extension_is_last_resort(self):
        assert resolve_content_type(None, b"unknown", "bill.pdf") == "application/pdf"

    def test_file_kind(self):
        assert file_kind("application/pdf") == PDF
        assert file_kind("image/png") == IMAGE
        assert file_kind("image/heic") is None
        assert file_kind("text/plain") is None
        assert file_kind(None) is None
