class TablesError(Exception):
    """Base class for every error raised by the tables app."""


class TableNotFound(TablesError):
    def __init__(self, table_name):
        self.table_name = table_name
        super().__init__(f"Table {table_name} not found.")


class BackendError(TablesError):
    """A call to the collection backend failed."""


class ColumnFetchError(BackendError):
    pass


class RowFetchError(BackendError):
    pass


class MutationError(BackendError):
    pass


class RecordNotFound(MutationError):
    def __init__(self, key, key_value):
        self.key = key
        self.key_value = key_value
        super().__init__(f"No row found with {key} = {key_value}.")


class FieldValueError(TablesError):
    def __init__(self, field, message):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class DraftValidationError(TablesError):
    """Raised when one or more draft values cannot be coerced."""

    def __init__(self, errors):
        self.errors = errors
        super().__init__(
            "Invalid values for: " + ", ".join(sorted(errors))
        )


class DraftError(TablesError):
    pass


class InvalidStateError(TablesError):
    pass


class UploadError(TablesError):
    def __init__(self, message, invalid_transactions=None):
        self.message = message
        self.invalid_transactions = invalid_transactions or []
        super().__init__(message)
