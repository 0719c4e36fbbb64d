"""
Upload filter accepting only CSV files.
"""

from pathlib import PurePath

import structlog
from fastapi import UploadFile

from augmentations_api.exceptions import InvalidFileTypeError

logger = structlog.get_logger(__name__)

CSV_CONTENT_TYPES = frozenset({"text/csv", "application/csv", "application/vnd.ms-excel"})
CSV_EXTENSION = ".csv"


class ValidateFileIsCSV:
    """
    Rejects uploads that are not CSV files.

    Both the content type and the file extension must say CSV. Runs as a
    dependency of the upload endpoint, so a rejected file never reaches the
    endpoint body.
    """

    def is_csv(self, file: UploadFile) -> bool:
        content_type = (file.content_type or "").split(";", 1)[0].strip().lower()
        extension = PurePath(file.filename or "").suffix.lower()
        return content_type in CSV_CONTENT_TYPES and extension == CSV_EXTENSION

    def on_action_executing(self, file: UploadFile) -> UploadFile:
        """
        Check an uploaded file.

        Raises:
            InvalidFileTypeError: If the file is not a CSV file
        """
        if not self.is_csv(file):
            logger.warning(
                "invalid_upload_rejected",
                filename=file.filename,
                content_type=file.content_type
            )
            raise InvalidFileTypeError(file.filename, file.content_type)
        return file
