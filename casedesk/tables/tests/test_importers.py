import json
from unittest import mock

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase

from tables.exceptions import MutationError, UploadError
from tables.field_types import resolve_schema
from tables.importers import BulkUploader, read_upload
from tables.tests.fakes import MemoryBackend


STUDENT_COLUMNS = ["id", "name", "dob", "gender", "days_of_week"]


def csv_file(text, name="students.csv"):
    return SimpleUploadedFile(name, text.encode("utf-8"), content_type="text/csv")


class ReadUploadTests(SimpleTestCase):

    def test_csv_rows_keep_text_and_blank_cells_become_none(self):
        rows = read_upload(csv_file("name,dob,student_id\nAsha,2010-04-01,007\nBob,,12\n"))
        self.assertEqual(rows, [
            {"name": "Asha", "dob": "2010-04-01", "student_id": "007"},
            {"name": "Bob", "dob": None, "student_id": "12"},
        ])

    def test_json_object_or_list(self):
        single = SimpleUploadedFile("one.json", json.dumps({"name": "Asha"}).encode("utf-8"))
        self.assertEqual(read_upload(single), [{"name": "Asha"}])

        many = SimpleUploadedFile("many.json", json.dumps([{"name": "A"}, {"name": "B"}]).encode("utf-8"))
        self.assertEqual(len(read_upload(many)), 2)

    def test_bad_json(self):
        with self.assertRaises(UploadError) as ctx:
            read_upload(SimpleUploadedFile("bad.json", b"{not json"))
        self.assertEqual(ctx.exception.message, "Invalid JSON file.")

        with self.assertRaises(UploadError):
            read_upload(SimpleUploadedFile("list.json", b"[1, 2]"))

    def test_unsupported_format(self):
        with self.assertRaises(UploadError) as ctx:
            read_upload(SimpleUploadedFile("notes.txt", b"hello"))
        self.assertEqual(ctx.exception.message, "Unsupported file format.")

    def test_empty_csv(self):
        with self.assertRaises(UploadError):
            read_upload(csv_file(""))


class BulkUploaderTests(SimpleTestCase):

    def setUp(self):
        self.backend = MemoryBackend()
        self.backend.add_table("students", STUDENT_COLUMNS, [])
        self.schema = resolve_schema(STUDENT_COLUMNS)
        self.on_complete = mock.Mock()
        self.on_cancel = mock.Mock()
        self.uploader = BulkUploader(self.backend, "students", self.on_complete, self.on_cancel)

    def test_upload_inserts_coerced_rows(self):
        upload = csv_file('name,dob,gender,days_of_week\nAsha,2010-04-01,female,"1,3"\nBob,,Male,\n')
        invalidation = self.uploader.run(upload, self.schema, "id")

        self.assertEqual(invalidation.table_name, "students")
        self.assertEqual(invalidation.inserted_count, 2)
        self.on_complete.assert_called_once_with(invalidation)
        self.on_cancel.assert_not_called()

        rows = self.backend.rows("students")
        self.assertEqual(rows[0]["gender"], "Female")
        self.assertEqual(rows[0]["days_of_week"], ["1", "3"])
        self.assertIsNone(rows[1]["dob"])

    def test_invalid_rows_insert_nothing(self):
        upload = csv_file("name,gender,nickname\nAsha,Alien,A\nBob,Male,B\n")
        with self.assertRaises(UploadError) as ctx:
            self.uploader.run(upload, self.schema, "id")

        self.assertEqual(ctx.exception.message, "Validation failed")
        self.assertEqual([entry["row"] for entry in ctx.exception.invalid_transactions], [1, 2])
        self.assertEqual(self.backend.rows("students"), [])
        self.on_cancel.assert_called_once_with()
        self.on_complete.assert_not_called()

    def test_validation_reports_bad_values(self):
        upload = csv_file("name,gender\nAsha,Alien\nBob,Male\n")
        with self.assertRaises(UploadError) as ctx:
            self.uploader.run(upload, self.schema, "id")
        invalid = ctx.exception.invalid_transactions
        self.assertEqual(len(invalid), 1)
        self.assertIn("gender", invalid[0]["errors"][0])

    def test_header_only_file(self):
        with self.assertRaises(UploadError) as ctx:
            self.uploader.run(csv_file("name,gender\n"), self.schema, "id")
        self.assertEqual(ctx.exception.message, "Uploaded file contains no rows.")
        self.on_cancel.assert_called_once_with()

    def test_backend_failure_cancels(self):
        self.backend.failures["insert"] = MutationError("permission denied")
        with self.assertRaises(MutationError):
            self.uploader.run(csv_file("name\nAsha\n"), self.schema, "id")
        self.on_cancel.assert_called_once_with()
        self.on_complete.assert_not_called()
