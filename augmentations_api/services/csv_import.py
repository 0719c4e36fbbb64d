"""
CSV import of augmentations (pyarrow.csv).

Expected header: name, description, type, activation, energy_consumption.
Only name is required; header names are case-insensitive and unknown
columns are ignored.
"""

import csv
import io
from typing import List

import pyarrow as pa
import structlog
from pyarrow import csv as pa_csv
from pydantic import ValidationError

from augmentations_api.exceptions import CsvImportError
from augmentations_api.models.augmentation import AugRequestModel

logger = structlog.get_logger(__name__)

CSV_COLUMNS = ("name", "description", "type", "activation", "energy_consumption")


def parse_augmentations_csv(data: bytes) -> List[AugRequestModel]:
    """
    Parse CSV content into augmentation request models.

    Args:
        data: Raw CSV bytes (UTF-8, optionally with a byte order mark)

    Returns:
        One model per data row, in file order

    Raises:
        CsvImportError: If the CSV is empty, has no name column, repeats a
            column, or a row is invalid
    """
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise CsvImportError("file is not UTF-8 encoded")

    if not text.strip():
        raise CsvImportError("file is empty")

    header = next(csv.reader(io.StringIO(text)))
    normalized = [name.strip().lower() for name in header]
    if "name" not in normalized:
        raise CsvImportError("missing required column 'name'")

    # Column names are matched case-insensitively, so "name,Name" is ambiguous.
    duplicates = sorted({name for name in normalized if normalized.count(name) > 1})
    if duplicates:
        raise CsvImportError(f"duplicate columns: {', '.join(duplicates)}")

    # Every column is read as text so values like "1" or "true" stay as written.
    try:
        table = pa_csv.read_csv(
            pa.BufferReader(text.encode("utf-8")),
            convert_options=pa_csv.ConvertOptions(
                column_types={name: pa.string() for name in header},
                strings_can_be_null=False,
            ),
        )
    except pa.ArrowInvalid as e:
        logger.warning("csv_parse_failed", error=str(e))
        raise CsvImportError(str(e))

    table = table.rename_columns(normalized)
    columns = [c for c in CSV_COLUMNS if c in normalized]
    models: List[AugRequestModel] = []

    # Row numbers count the header as row 1.
    for row_number, row in enumerate(table.select(columns).to_pylist(), start=2):
        try:
            models.append(AugRequestModel.model_validate(row))
        except ValidationError as e:
            messages = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise CsvImportError(messages, row=row_number)

    logger.info("csv_parsed", rows=len(models))
    return models
