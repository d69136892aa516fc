import logging
from enum import Enum

from .exceptions import DraftError, DraftValidationError, FieldValueError
from .field_types import SERVER_DEFAULT_FIELDS, FieldKind
from .formatters import coerce_value, edit_control, is_empty, iso_date


logger = logging.getLogger(__name__)


class DraftMode(str, Enum):
    CREATE = "create"
    EDIT = "edit"


class RecordDraft:
    """In-progress values backing the create/edit form of a table.

    Keys are always columns of the table. In edit mode the loaded record is
    kept so that values the user did not touch are sent back exactly as they
    were loaded, and so that the identifier cannot change.
    """

    def __init__(self, schema, identifier, mode, values, original=None):
        self.schema = schema
        self.identifier = identifier
        self.mode = mode
        self.values = dict(values)
        self.original = dict(original) if original is not None else None

    @classmethod
    def blank(cls, schema, identifier, scope=None):
        values = {column: None for column in schema}
        if scope is not None:
            scope_column, scope_id = scope
            if scope_column in values:
                values[scope_column] = scope_id
            else:
                logger.warning(f"Scope column {scope_column} is not a column of this table")
        return cls(schema, identifier, DraftMode.CREATE, values)

    @classmethod
    def from_record(cls, schema, identifier, record):
        values = {column: record.get(column) for column in schema}
        return cls(schema, identifier, DraftMode.EDIT, values, original=values)

    @property
    def is_edit(self):
        return self.mode is DraftMode.EDIT

    @property
    def record_id(self):
        if not self.is_edit:
            return None
        return self.original[self.identifier]

    def set(self, column, value):
        if column not in self.schema:
            raise DraftError(f"Unknown column: {column}.")
        if self.is_edit and column == self.identifier:
            if str(value) != str(self.original[column]):
                raise DraftError(f"Column '{column}' is the record identifier and cannot be changed.")
            return
        self.values[column] = value

    def update(self, values):
        unknown = [column for column in values if column not in self.schema]
        if unknown:
            raise DraftError(f"Invalid columns: {', '.join(unknown)}.")
        for column, value in values.items():
            self.set(column, value)

    def _unchanged(self, column):
        if not self.is_edit:
            return False
        value, original = self.values[column], self.original[column]
        if value == original:
            return True

        kind = self.schema[column].kind
        if kind is FieldKind.PASSWORD:
            # The edit control is always blank; blank means keep the stored password.
            return is_empty(value)
        if kind is FieldKind.DATE:
            # The edit control carries only the date part of a timestamp.
            echoed = iso_date(value)
            return echoed is not None and echoed == iso_date(original)
        return False

    def payload(self):
        payload = {}
        errors = {}
        for column, spec in self.schema.items():
            value = self.values.get(column)
            if self._unchanged(column):
                payload[column] = self.original[column]
                continue
            try:
                coerced = coerce_value(spec, value)
            except FieldValueError as e:
                errors[column] = e.message
                continue
            if not self.is_edit and coerced is None and (
                column == self.identifier or column in SERVER_DEFAULT_FIELDS
            ):
                continue
            payload[column] = coerced

        if errors:
            raise DraftValidationError(errors)
        return payload

    def controls(self):
        return [
            edit_control(spec, self.values.get(column))
            for column, spec in self.schema.items()
            if not (column == self.identifier and not self.is_edit)
        ]
