"""
Server-side controller for one dashboard table.

A TableController loads the columns and rows of a table once, keeps the rows
cached, and runs every user action (search, add, edit, delete, bulk upload,
voice create) against that cache and the collection backend. After each
successful mutation the row returned by the backend replaces the cached one.

States::

    loading -> ready <-> form-open | uploading | voice-capturing -> ready
    loading -> error

Failures never raise out of an action: they are logged and recorded as a
Notification for the caller to show.
"""
import logging
import threading
from collections import OrderedDict
from enum import Enum

from django.conf import settings
from django.utils import timezone

from .drafts import RecordDraft
from .exceptions import (
    BackendError,
    ColumnFetchError,
    DraftError,
    DraftValidationError,
    InvalidStateError,
    RecordNotFound,
    RowFetchError,
)
from .field_types import identifier_column, resolve_schema


logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "An unexpected error occurred"


class ViewState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    FORM_OPEN = "form-open"
    UPLOADING = "uploading"
    VOICE_CAPTURING = "voice-capturing"
    ERROR = "error"


class Notification:
    SUCCESS = "success"
    ERROR = "error"

    def __init__(self, level, message, code=None, errors=None):
        self.level = level
        self.message = message
        self.code = code
        self.errors = errors or {}

    def __repr__(self):
        return f"Notification({self.level!r}, {self.message!r})"


class CacheInvalidation:
    """Tells a controller its cached rows are stale after a bulk upload."""

    def __init__(self, table_name, inserted_count=0):
        self.table_name = table_name
        self.inserted_count = inserted_count


class TableController:
    def __init__(self, descriptor, backend):
        self.descriptor = descriptor
        self.backend = backend
        self.state = ViewState.LOADING
        self.error = None
        self.columns = []
        self.schema = {}
        self.identifier = None
        self.records = []
        self.draft = None
        self.notifications = []
        self._generation = 0
        self._lock = threading.RLock()
        self._mutation_lock = threading.Lock()

    def __repr__(self):
        return f"<TableController {self.table_name} [{self.state.value}]>"

    @property
    def table_name(self):
        return self.descriptor.name

    def _notify(self, level, message, code=None, errors=None):
        notification = Notification(level, message, code=code, errors=errors)
        with self._lock:
            self.notifications.append(notification)
        return notification

    def pop_notifications(self):
        with self._lock:
            notifications, self.notifications = self.notifications, []
        return notifications

    def _require_state(self, action, *states):
        if self.state not in states:
            raise InvalidStateError(f"Cannot {action} while the table is {self.state.value}.")

    # Loading

    def begin_load(self):
        with self._lock:
            self._generation += 1
            self.state = ViewState.LOADING
            self.error = None
            self.draft = None
            return self._generation

    def finish_load(self, generation, columns, rows):
        with self._lock:
            if generation != self._generation:
                logger.debug(f"Discarding stale load {generation} of {self.table_name}")
                return False
            self.columns = list(columns)
            self.schema = resolve_schema(self.columns, rows)
            self.identifier = identifier_column(self.table_name, self.columns)
            self.records = list(rows)
            self.state = ViewState.READY
            return True

    def fail_load(self, generation, message):
        with self._lock:
            if generation != self._generation:
                logger.debug(f"Discarding stale failure {generation} of {self.table_name}")
                return False
            self.columns = []
            self.schema = {}
            self.identifier = None
            self.records = []
            self.state = ViewState.ERROR
            self.error = message
        self._notify(Notification.ERROR, message, code="backend")
        return True

    def load(self):
        """Fetch columns then rows. Returns True if this load is now current."""
        generation = self.begin_load()

        try:
            columns = self.backend.fetch_columns(self.table_name)
        except ColumnFetchError as e:
            logger.error(f"Error fetching columns for {self.table_name}: {e}")
            self.fail_load(generation, "Failed to fetch table columns")
            return False
        except Exception:
            logger.exception(f"Error fetching columns for {self.table_name}")
            self.fail_load(generation, UNEXPECTED_ERROR)
            return False

        try:
            rows = self.backend.select(self.table_name, self.descriptor.scope)
        except RowFetchError as e:
            logger.error(f"Error fetching data for {self.table_name}: {e}")
            self.fail_load(generation, "Failed to fetch data")
            return False
        except Exception:
            logger.exception(f"Error fetching data for {self.table_name}")
            self.fail_load(generation, UNEXPECTED_ERROR)
            return False

        return self.finish_load(generation, columns, rows)

    def ensure_loaded(self):
        if self._generation == 0:
            self.load()
        return self.state is not ViewState.ERROR

    # Reading

    def search(self, term):
        with self._lock:
            records = list(self.records)

        term = (term or "").strip().lower()
        if not term:
            return records
        return [record for record in records if _matches(record, term)]

    def find(self, record_id):
        with self._lock:
            for record in self.records:
                if str(record.get(self.identifier)) == str(record_id):
                    return record
        return None

    # Drafts

    def open_for_create(self):
        with self._lock:
            self._require_state("add a record", ViewState.READY, ViewState.FORM_OPEN)
            self.draft = RecordDraft.blank(self.schema, self.identifier, self.descriptor.scope)
            self.state = ViewState.FORM_OPEN
            return self.draft

    def open_for_edit(self, record_id):
        with self._lock:
            self._require_state("edit a record", ViewState.READY, ViewState.FORM_OPEN)
            if self.identifier is None:
                raise InvalidStateError(f"Table {self.table_name} has no identifier column.")
            record = self.find(record_id)
            if record is None:
                raise RecordNotFound(self.identifier, record_id)
            self.draft = RecordDraft.from_record(self.schema, self.identifier, record)
            self.state = ViewState.FORM_OPEN
            return self.draft

    def cancel(self):
        with self._lock:
            self.draft = None
            if self.state in (ViewState.FORM_OPEN, ViewState.UPLOADING, ViewState.VOICE_CAPTURING):
                self.state = ViewState.READY

    def _close_form(self, draft, state=ViewState.FORM_OPEN):
        with self._lock:
            if self.draft is draft:
                self.draft = None
            if self.state is state:
                self.state = ViewState.READY

    def _insert_draft(self, draft, failure_message):
        try:
            payload = draft.payload()
        except DraftValidationError as e:
            self._notify(Notification.ERROR, failure_message, code="invalid", errors=e.errors)
            return None

        try:
            inserted = self.backend.insert(self.table_name, [payload])
        except BackendError as e:
            logger.error(f"Insert error on {self.table_name}: {e}")
            self._notify(Notification.ERROR, f"{failure_message}: {e}", code="backend")
            return None
        except Exception:
            logger.exception(f"Error adding record to {self.table_name}")
            self._notify(Notification.ERROR, UNEXPECTED_ERROR, code="unexpected")
            return None

        if not inserted:
            self._notify(Notification.ERROR, failure_message, code="backend")
            return None

        record = inserted[0]
        with self._lock:
            self.records.append(record)
        return record

    def submit(self):
        """Send the open draft. Returns the backend's row, or None on failure."""
        with self._mutation_lock:
            with self._lock:
                self._require_state("submit a form", ViewState.FORM_OPEN)
                draft = self.draft

            if draft.is_edit:
                return self._submit_edit(draft)

            record = self._insert_draft(draft, "Failed to add record")
            if record is not None:
                self._close_form(draft)
                self._notify(Notification.SUCCESS, "Record added successfully")
            return record

    def _submit_edit(self, draft):
        try:
            payload = draft.payload()
        except DraftValidationError as e:
            self._notify(Notification.ERROR, "Failed to update record", code="invalid", errors=e.errors)
            return None

        record_id = draft.record_id
        try:
            updated = self.backend.update(self.table_name, payload, self.identifier, record_id)
        except RecordNotFound as e:
            logger.error(f"Update error on {self.table_name}: {e}")
            self._notify(Notification.ERROR, f"Failed to update record: {e}", code="not_found")
            return None
        except BackendError as e:
            logger.error(f"Update error on {self.table_name}: {e}")
            self._notify(Notification.ERROR, f"Failed to update record: {e}", code="backend")
            return None
        except Exception:
            logger.exception(f"Error updating record in {self.table_name}")
            self._notify(Notification.ERROR, UNEXPECTED_ERROR, code="unexpected")
            return None

        record = updated[0]
        with self._lock:
            self.records = [
                record if str(item.get(self.identifier)) == str(record_id) else item
                for item in self.records
            ]
        self._close_form(draft)
        self._notify(Notification.SUCCESS, "Record updated successfully")
        return record

    def delete(self, record_id, confirmed=False):
        if not confirmed:
            self._notify(Notification.ERROR, "Deletion must be confirmed", code="invalid")
            return False

        with self._mutation_lock:
            with self._lock:
                self._require_state("delete a record", ViewState.READY, ViewState.FORM_OPEN)
                record = self.find(record_id)
                if record is None:
                    self._notify(
                        Notification.ERROR,
                        f"No row found with {self.identifier} = {record_id}.",
                        code="not_found",
                    )
                    return False
                key_value = record[self.identifier]

            try:
                self.backend.delete(self.table_name, self.identifier, key_value)
            except RecordNotFound as e:
                logger.error(f"Delete error on {self.table_name}: {e}")
                self._notify(Notification.ERROR, f"Failed to delete record: {e}", code="not_found")
                return False
            except BackendError as e:
                logger.error(f"Delete error on {self.table_name}: {e}")
                self._notify(Notification.ERROR, f"Failed to delete record: {e}", code="backend")
                return False
            except Exception:
                logger.exception(f"Error deleting record from {self.table_name}")
                self._notify(Notification.ERROR, UNEXPECTED_ERROR, code="unexpected")
                return False

            with self._lock:
                self.records = [
                    item for item in self.records
                    if str(item.get(self.identifier)) != str(record_id)
                ]
                if self.draft is not None and self.draft.is_edit and str(self.draft.record_id) == str(record_id):
                    self.draft = None
                    self.state = ViewState.READY
            self._notify(Notification.SUCCESS, "Record deleted successfully")
            return True

    # Bulk upload

    def begin_upload(self):
        with self._lock:
            self._require_state("upload records", ViewState.READY, ViewState.FORM_OPEN)
            self.draft = None
            self.state = ViewState.UPLOADING

    def cancel_upload(self):
        with self._lock:
            if self.state is ViewState.UPLOADING:
                self.state = ViewState.READY

    def complete_upload(self, invalidation):
        """Reload from the backend after the uploader reports new rows."""
        if invalidation.table_name != self.table_name:
            logger.warning(
                f"Ignoring invalidation for {invalidation.table_name} sent to {self.table_name}"
            )
            self.cancel_upload()
            return False

        self._notify(
            Notification.SUCCESS,
            f"{invalidation.inserted_count} records uploaded successfully",
        )
        return self.load()

    # Voice input

    def begin_voice(self):
        with self._lock:
            self._require_state(
                "start voice input", ViewState.READY, ViewState.FORM_OPEN, ViewState.VOICE_CAPTURING
            )
            self.draft = None
            self.state = ViewState.VOICE_CAPTURING

    def voice_create(self, fields):
        """Create a record from the field mapping delivered by voice capture."""
        with self._mutation_lock:
            with self._lock:
                self._require_state("create from voice input", ViewState.VOICE_CAPTURING)
                draft = RecordDraft.blank(self.schema, self.identifier, self.descriptor.scope)

            try:
                draft.update(fields)
            except DraftError as e:
                self._notify(Notification.ERROR, f"Failed to add record via voice: {e}", code="invalid")
                return None
            if "created_at" in self.schema:
                draft.set("created_at", timezone.now())

            record = self._insert_draft(draft, "Failed to add record via voice")
            if record is not None:
                self._close_form(draft, state=ViewState.VOICE_CAPTURING)
                self._notify(
                    Notification.SUCCESS,
                    f"{self.table_name} created successfully via voice input",
                )
            return record


def _matches(record, term):
    for value in record.values():
        if value is None or isinstance(value, (list, tuple, dict)):
            continue
        if term in str(value).lower():
            return True
    return False


class ControllerRegistry:
    """Bounded, thread-safe map of live controllers (least recently used out)."""

    def __init__(self, maxsize=None):
        self._maxsize = maxsize
        self._controllers = OrderedDict()
        self._lock = threading.Lock()

    @property
    def maxsize(self):
        if self._maxsize is not None:
            return self._maxsize
        return settings.CASEDESK_CONTROLLER_CACHE_SIZE

    def get(self, key, factory):
        with self._lock:
            controller = self._controllers.get(key)
            if controller is not None:
                self._controllers.move_to_end(key)
                return controller

            controller = factory()
            self._controllers[key] = controller
            while len(self._controllers) > self.maxsize:
                self._controllers.popitem(last=False)
            return controller

    def clear(self):
        with self._lock:
            self._controllers.clear()

    def __len__(self):
        return len(self._controllers)


controllers = ControllerRegistry()
