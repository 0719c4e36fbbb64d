"""
Unit tests for CSV uploads.

Tests cover:
- The CSV file filter (content type and extension)
- Parsing rows into augmentation models
"""

from io import BytesIO

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from augmentations_api.exceptions import CsvImportError, InvalidFileTypeError
from augmentations_api.filters.csv_validation import ValidateFileIsCSV
from augmentations_api.services.csv_import import parse_augmentations_csv


def upload(filename: str, content_type: str) -> UploadFile:
    return UploadFile(
        file=BytesIO(b"name\nCloak\n"),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


class TestValidateFileIsCSV:
    """Tests for the CSV upload filter."""

    @pytest.mark.parametrize("filename,content_type", [
        ("augmentations.csv", "text/csv"),
        ("AUGMENTATIONS.CSV", "text/csv; charset=utf-8"),
        ("augmentations.csv", "application/vnd.ms-excel"),
    ])
    def test_accepts_csv(self, filename, content_type):
        """Test CSV files pass through unchanged."""
        file = upload(filename, content_type)

        assert ValidateFileIsCSV().on_action_executing(file) is file

    @pytest.mark.parametrize("filename,content_type", [
        ("augmentations.txt", "text/csv"),
        ("augmentations.csv", "text/plain"),
        ("augmentations.csv", "application/pdf"),
        ("augmentations", "text/csv"),
    ])
    def test_rejects_non_csv(self, filename, content_type):
        """Test both the extension and the content type must say CSV."""
        with pytest.raises(InvalidFileTypeError) as exc_info:
            ValidateFileIsCSV().on_action_executing(upload(filename, content_type))

        assert exc_info.value.status_code == 400
        assert exc_info.value.details["filename"] == filename


class TestParseAugmentationsCsv:
    """Tests for CSV parsing."""

    def test_parses_rows(self):
        """Test every data row becomes a model."""
        data = (
            b"name,description,type,activation,energy_consumption\n"
            b"Cloak,Renders the agent invisible,Skin,Active,High\n"
            b"Radar,Shows enemies,Head,Passive,None\n"
        )

        models = parse_augmentations_csv(data)

        assert [m.name for m in models] == ["Cloak", "Radar"]
        assert models[0].energy_consumption == "High"
        assert models[1].type == "Head"

    def test_values_stay_text(self):
        """Test numeric-looking values keep their spelling."""
        models = parse_augmentations_csv(b"Name,Description\n007,1.50\n")

        assert models[0].name == "007"
        assert models[0].description == "1.50"

    def test_optional_columns_and_bom(self):
        """Test a BOM is ignored and missing columns take defaults."""
        models = parse_augmentations_csv("\ufeffname\nCloak\n".encode("utf-8"))

        assert models[0].name == "Cloak"
        assert models[0].description == ""
        assert models[0].type is None

    def test_header_only(self):
        """Test a header without rows imports nothing."""
        assert parse_augmentations_csv(b"name,description\n") == []

    def test_missing_name_column(self):
        """Test the name column is required."""
        with pytest.raises(CsvImportError) as exc_info:
            parse_augmentations_csv(b"description\nSomething\n")

        assert "name" in exc_info.value.details["error"]

    def test_blank_name_reports_row(self):
        """Test invalid rows are reported with their line number."""
        with pytest.raises(CsvImportError) as exc_info:
            parse_augmentations_csv(b"name\nCloak\n   \n")

        assert exc_info.value.details["row"] == 3

    def test_empty_file(self):
        """Test empty files are rejected."""
        with pytest.raises(CsvImportError):
            parse_augmentations_csv(b"")

    @pytest.mark.parametrize("header", [b"name,Name", b"name,description, DESCRIPTION "])
    def test_duplicate_columns(self, header):
        """Test columns repeated after case folding are rejected."""
        with pytest.raises(CsvImportError) as exc_info:
            parse_augmentations_csv(header + b"\nCloak,Cloak2\n")

        assert "duplicate columns" in exc_info.value.details["error"]
