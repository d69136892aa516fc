import datetime
import json
import logging
from io import BytesIO, StringIO

import pandas as pd

from .controller import CacheInvalidation
from .exceptions import UploadError
from .serializers import DataValidator


logger = logging.getLogger(__name__)


def _clean_value(value):
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return value
    if pd.isna(value):
        return None
    if isinstance(value, (pd.Timestamp, datetime.datetime, datetime.date)):
        return pd.to_datetime(value).to_pydatetime().isoformat()
    if hasattr(value, "item"):
        return value.item()
    return value


def frame_to_records(df):
    return [
        {str(key): _clean_value(value) for key, value in record.items()}
        for record in df.to_dict(orient="records")
    ]


def read_upload(uploaded_file):
    """Parse an uploaded CSV, JSON or XLSX file into a list of row dicts."""
    file_extension = uploaded_file.name.split(".")[-1].lower()

    if file_extension == "json":
        try:
            client_data = json.load(uploaded_file)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"JSON decoding error: {e}")
            raise UploadError("Invalid JSON file.") from e
        if isinstance(client_data, dict):
            client_data = [client_data]
        if not isinstance(client_data, list) or not all(isinstance(row, dict) for row in client_data):
            raise UploadError("JSON upload must be a list of objects.")
        return [{key: _clean_value(value) for key, value in row.items()} for row in client_data]

    if file_extension == "csv":
        try:
            df = pd.read_csv(StringIO(uploaded_file.read().decode("utf-8")), dtype=str)
        except (UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            logger.error(f"CSV reading error: {e}")
            raise UploadError("Invalid CSV file.") from e
        return frame_to_records(df)

    if file_extension == "xlsx":
        try:
            df = pd.read_excel(BytesIO(uploaded_file.read()), dtype=str)
        except ValueError as e:
            logger.error(f"Excel reading error: {e}")
            raise UploadError("Invalid Excel file.") from e
        return frame_to_records(df)

    raise UploadError("Unsupported file format.")


class BulkUploader:
    """Inserts the rows of an uploaded file into one table.

    On success ``on_complete`` receives a CacheInvalidation for the table; on
    any failure ``on_cancel`` is called before the error propagates.
    """

    def __init__(self, backend, table_name, on_complete, on_cancel):
        self.backend = backend
        self.table_name = table_name
        self.on_complete = on_complete
        self.on_cancel = on_cancel

    def run(self, uploaded_file, schema, identifier=None, scope=None):
        try:
            client_data = read_upload(uploaded_file)
            if not client_data:
                raise UploadError("Uploaded file contains no rows.")

            validation_result = DataValidator().validate_fields(client_data, schema, identifier, scope)
            if not validation_result["is_valid"]:
                logger.error(f"Validation failed: {validation_result['invalid_transactions']}")
                raise UploadError("Validation failed", validation_result["invalid_transactions"])

            inserted = self.backend.insert(self.table_name, validation_result["rows"])
        except Exception:
            self.on_cancel()
            raise

        logger.info(f"Uploaded {len(inserted)} rows into {self.table_name}")
        invalidation = CacheInvalidation(self.table_name, len(inserted))
        self.on_complete(invalidation)
        return invalidation
