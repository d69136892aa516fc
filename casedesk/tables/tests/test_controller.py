from django.test import SimpleTestCase

from tables.controller import (
    CacheInvalidation,
    ControllerRegistry,
    Notification,
    TableController,
    ViewState,
)
from tables.drafts import DraftMode
from tables.exceptions import (
    ColumnFetchError,
    DraftError,
    InvalidStateError,
    MutationError,
    RecordNotFound,
    RowFetchError,
)
from tables.formatters import format_display
from tables.models import TableDescriptor
from tables.tests.fakes import MemoryBackend


STUDENT_COLUMNS = ["id", "name", "dob", "gender", "days_of_week"]


def make_controller(backend, scope_id=None):
    descriptor = TableDescriptor("students", "Students", scope_column="center_id", scope_id=scope_id)
    return TableController(descriptor, backend)


class LoadTests(SimpleTestCase):

    def setUp(self):
        self.backend = MemoryBackend()
        self.backend.add_table("students", STUDENT_COLUMNS, [
            {"id": 1, "name": "Asha Rao", "dob": "2010-04-01", "gender": "Female", "days_of_week": ["1"]},
            {"id": 2, "name": "Bob", "dob": None, "gender": "Male", "days_of_week": None},
        ])

    def test_load_populates_cache(self):
        controller = make_controller(self.backend)
        self.assertTrue(controller.load())
        self.assertIs(controller.state, ViewState.READY)
        self.assertEqual(controller.columns, STUDENT_COLUMNS)
        self.assertEqual(controller.identifier, "id")
        self.assertEqual(len(controller.records), 2)
        self.assertEqual(list(controller.schema), STUDENT_COLUMNS)
        self.assertEqual(
            [call[0] for call in self.backend.calls], ["fetch_columns", "select"]
        )

    def test_column_failure_moves_to_error(self):
        self.backend.failures["fetch_columns"] = ColumnFetchError("boom")
        controller = make_controller(self.backend)
        self.assertFalse(controller.load())
        self.assertIs(controller.state, ViewState.ERROR)
        self.assertEqual(controller.error, "Failed to fetch table columns")
        self.assertEqual(controller.columns, [])
        notifications = controller.pop_notifications()
        self.assertEqual(notifications[0].level, Notification.ERROR)

    def test_row_failure_keeps_nothing_partial(self):
        self.backend.failures["select"] = RowFetchError("boom")
        controller = make_controller(self.backend)
        controller.load()
        self.assertIs(controller.state, ViewState.ERROR)
        self.assertEqual(controller.error, "Failed to fetch data")
        self.assertEqual(controller.columns, [])
        self.assertEqual(controller.records, [])

    def test_unexpected_failure(self):
        self.backend.failures["select"] = RuntimeError("socket closed")
        controller = make_controller(self.backend)
        controller.load()
        self.assertEqual(controller.error, "An unexpected error occurred")

    def test_stale_load_is_discarded(self):
        controller = make_controller(self.backend)
        first = controller.begin_load()
        second = controller.begin_load()

        self.assertFalse(controller.finish_load(first, ["id", "old"], [{"id": 9, "old": "x"}]))
        self.assertIs(controller.state, ViewState.LOADING)
        self.assertFalse(controller.fail_load(first, "late failure"))

        self.assertTrue(controller.finish_load(second, STUDENT_COLUMNS, []))
        self.assertEqual(controller.columns, STUDENT_COLUMNS)
        self.assertIs(controller.state, ViewState.READY)

    def test_scope_filters_rows(self):
        self.backend.add_table("students", ["id", "name", "center_id"], [
            {"id": 1, "name": "Asha", "center_id": 7},
            {"id": 2, "name": "Bob", "center_id": 8},
        ])
        controller = make_controller(self.backend, scope_id=7)
        controller.load()
        self.assertEqual([row["name"] for row in controller.records], ["Asha"])
        self.assertIn(("select", "students", ("center_id", 7)), self.backend.calls)

    def test_ensure_loaded_loads_once(self):
        controller = make_controller(self.backend)
        controller.ensure_loaded()
        controller.ensure_loaded()
        self.assertEqual(len([c for c in self.backend.calls if c[0] == "select"]), 1)

    def test_actions_need_a_loaded_table(self):
        controller = make_controller(self.backend)
        with self.assertRaises(InvalidStateError):
            controller.open_for_create()


class SearchTests(SimpleTestCase):

    def setUp(self):
        backend = MemoryBackend()
        backend.add_table("students", STUDENT_COLUMNS, [
            {"id": 1, "name": "Asha Rao", "dob": None, "gender": "Female", "days_of_week": ["Zed"]},
            {"id": 2, "name": "Bob", "dob": None, "gender": "Male", "days_of_week": None},
        ])
        self.controller = make_controller(backend)
        self.controller.load()

    def test_case_insensitive_substring(self):
        self.assertEqual([r["name"] for r in self.controller.search("asha")], ["Asha Rao"])
        self.assertEqual([r["name"] for r in self.controller.search("BO")], ["Bob"])

    def test_matches_any_scalar_value(self):
        self.assertEqual([r["id"] for r in self.controller.search("male")], [1, 2])
        self.assertEqual([r["id"] for r in self.controller.search("2")], [2])

    def test_empty_term_returns_everything(self):
        self.assertEqual(len(self.controller.search("  ")), 2)

    def test_array_values_are_not_searched(self):
        self.assertEqual(self.controller.search("zed"), [])


class MutationTests(SimpleTestCase):

    def setUp(self):
        self.backend = MemoryBackend()
        self.backend.add_table("students", STUDENT_COLUMNS, [
            {"id": 1, "name": "Asha Rao", "dob": "2010-04-01", "gender": "Female", "days_of_week": ["1", "3"]},
        ])
        self.controller = make_controller(self.backend)
        self.controller.load()

    def test_create_scenario(self):
        draft = self.controller.open_for_create()
        self.assertIs(self.controller.state, ViewState.FORM_OPEN)
        draft.update({"name": "Asha", "dob": "2010-04-01", "gender": "Female", "days_of_week": "1,3"})

        record = self.controller.submit()

        self.assertEqual(
            self.backend.calls[-1],
            ("insert", "students", [
                {"name": "Asha", "dob": "2010-04-01", "gender": "Female", "days_of_week": ["1", "3"]},
            ]),
        )
        self.assertEqual(record["id"], 2)
        self.assertEqual(len(self.controller.records), 2)
        self.assertEqual(self.controller.records[-1], record)
        self.assertIs(self.controller.state, ViewState.READY)
        self.assertIsNone(self.controller.draft)
        self.assertEqual(self.controller.pop_notifications()[-1].message, "Record added successfully")

    def test_create_failure_leaves_cache_alone(self):
        self.backend.failures["insert"] = MutationError("duplicate key")
        draft = self.controller.open_for_create()
        draft.set("name", "Asha")

        self.assertIsNone(self.controller.submit())
        self.assertEqual(len(self.controller.records), 1)
        self.assertIs(self.controller.state, ViewState.FORM_OPEN)
        notification = self.controller.pop_notifications()[-1]
        self.assertEqual(notification.level, Notification.ERROR)
        self.assertEqual(notification.code, "backend")
        self.assertTrue(notification.message.startswith("Failed to add record"))

    def test_create_with_invalid_values(self):
        draft = self.controller.open_for_create()
        draft.set("gender", "Alien")
        self.assertIsNone(self.controller.submit())
        notification = self.controller.pop_notifications()[-1]
        self.assertEqual(notification.code, "invalid")
        self.assertIn("gender", notification.errors)
        self.assertNotIn("insert", [call[0] for call in self.backend.calls])

    def test_edit_without_changes_is_idempotent(self):
        original = dict(self.controller.records[0])
        self.controller.open_for_edit(1)
        self.controller.submit()
        operation, table, values, key, key_value = self.backend.calls[-1]
        self.assertEqual(operation, "update")
        self.assertEqual((key, key_value), ("id", 1))
        self.assertEqual(values, {column: original[column] for column in STUDENT_COLUMNS})

    def test_edit_replaces_cached_row(self):
        draft = self.controller.open_for_edit("1")
        self.assertIs(draft.mode, DraftMode.EDIT)
        draft.set("name", "Asha R.")
        record = self.controller.submit()
        self.assertEqual(record["name"], "Asha R.")
        self.assertEqual(self.controller.records, [record])
        self.assertEqual(self.controller.pop_notifications()[-1].message, "Record updated successfully")

    def test_edit_missing_record(self):
        with self.assertRaises(RecordNotFound):
            self.controller.open_for_edit(99)

    def test_edit_record_gone_on_server(self):
        self.controller.open_for_edit(1)
        self.backend.tables["students"]["rows"] = []
        self.assertIsNone(self.controller.submit())
        self.assertEqual(self.controller.pop_notifications()[-1].code, "not_found")
        self.assertEqual(len(self.controller.records), 1)

    def test_identifier_cannot_change(self):
        draft = self.controller.open_for_edit(1)
        with self.assertRaises(DraftError):
            draft.set("id", 2)

    def test_cancel_discards_draft(self):
        self.controller.open_for_create()
        self.controller.cancel()
        self.assertIsNone(self.controller.draft)
        self.assertIs(self.controller.state, ViewState.READY)
        with self.assertRaises(InvalidStateError):
            self.controller.submit()

    def test_delete_requires_confirmation(self):
        self.assertFalse(self.controller.delete(1))
        self.assertEqual(len(self.controller.records), 1)
        self.assertNotIn("delete", [call[0] for call in self.backend.calls])

    def test_delete(self):
        self.assertTrue(self.controller.delete("1", confirmed=True))
        self.assertEqual(self.controller.records, [])
        self.assertEqual(self.backend.calls[-1], ("delete", "students", "id", 1))

    def test_delete_unknown_record(self):
        self.assertFalse(self.controller.delete(42, confirmed=True))
        self.assertEqual(self.controller.pop_notifications()[-1].code, "not_found")

    def test_delete_backend_failure(self):
        self.backend.failures["delete"] = MutationError("permission denied")
        self.assertFalse(self.controller.delete(1, confirmed=True))
        self.assertEqual(len(self.controller.records), 1)

    def test_days_of_week_round_trip(self):
        draft = self.controller.open_for_create()
        draft.update({"name": "Chitra", "days_of_week": "1,3,5"})
        self.controller.submit()

        self.controller.load()
        record = self.controller.find(2)
        self.assertEqual(
            format_display(self.controller.schema["days_of_week"], record["days_of_week"]),
            "Monday, Wednesday, Friday",
        )


class UploadAndVoiceTests(SimpleTestCase):

    def setUp(self):
        self.backend = MemoryBackend()
        self.backend.add_table("students", STUDENT_COLUMNS + ["created_at"], [])
        self.controller = make_controller(self.backend)
        self.controller.load()

    def test_upload_invalidation_reloads(self):
        self.controller.begin_upload()
        self.assertIs(self.controller.state, ViewState.UPLOADING)
        self.backend.insert("students", [{"name": "Asha"}, {"name": "Bob"}])

        self.assertTrue(self.controller.complete_upload(CacheInvalidation("students", 2)))
        self.assertIs(self.controller.state, ViewState.READY)
        self.assertEqual(len(self.controller.records), 2)

    def test_invalidation_for_another_table_is_ignored(self):
        self.controller.begin_upload()
        self.assertFalse(self.controller.complete_upload(CacheInvalidation("educators", 1)))
        self.assertIs(self.controller.state, ViewState.READY)

    def test_cancel_upload(self):
        self.controller.begin_upload()
        self.controller.cancel_upload()
        self.assertIs(self.controller.state, ViewState.READY)

    def test_voice_create(self):
        self.controller.begin_voice()
        record = self.controller.voice_create(
            {"name": "Asha", "gender": "female", "days_of_week": "Monday, Wednesday"}
        )

        self.assertEqual(record["gender"], "Female")
        self.assertEqual(record["days_of_week"], ["1", "3"])
        self.assertIsNotNone(record["created_at"])
        self.assertIs(self.controller.state, ViewState.READY)
        self.assertEqual(
            self.controller.pop_notifications()[-1].message,
            "students created successfully via voice input",
        )

    def test_voice_create_with_unknown_field(self):
        self.controller.begin_voice()
        self.assertIsNone(self.controller.voice_create({"nickname": "A"}))
        self.assertIs(self.controller.state, ViewState.VOICE_CAPTURING)
        self.assertEqual(self.controller.records, [])

    def test_voice_needs_capture_state(self):
        with self.assertRaises(InvalidStateError):
            self.controller.voice_create({"name": "Asha"})


class RegistryTests(SimpleTestCase):

    def test_get_reuses_and_evicts(self):
        registry = ControllerRegistry(maxsize=2)
        backend = MemoryBackend()
        first = registry.get("a", lambda: make_controller(backend))
        self.assertIs(registry.get("a", lambda: make_controller(backend)), first)

        registry.get("b", lambda: make_controller(backend))
        registry.get("a", lambda: make_controller(backend))
        registry.get("c", lambda: make_controller(backend))

        self.assertEqual(len(registry), 2)
        self.assertIs(registry.get("a", lambda: make_controller(backend)), first)


class EchoedEditFormTests(SimpleTestCase):

    def setUp(self):
        self.backend = MemoryBackend()
        self.backend.add_table("employees", ["id", "name", "password", "created_at"], [
            {"id": 1, "name": "Meera", "password": "hunter2", "created_at": "2024-03-05T10:30:00+00:00"},
        ])
        descriptor = TableDescriptor("employees", "Employees")
        self.controller = TableController(descriptor, self.backend)
        self.controller.load()

    def test_submitting_the_served_controls_keeps_untouched_values(self):
        draft = self.controller.open_for_edit(1)
        values = {control["name"]: control["value"] for control in draft.controls()}
        values["name"] = "Meera K."
        draft.update(values)

        record = self.controller.submit()

        self.assertEqual(record["name"], "Meera K.")
        self.assertEqual(record["password"], "hunter2")
        self.assertEqual(record["created_at"], "2024-03-05T10:30:00+00:00")
