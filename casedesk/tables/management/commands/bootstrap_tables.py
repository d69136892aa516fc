from django.core.management.base import BaseCommand, CommandError
from django.db import DEFAULT_DB_ALIAS, connections

from tables.models import ManagedTable
from tables.utils import create_dynamic_table


def _col(name, data_type, **options):
    return dict(column_name=name, data_type=data_type, **options)


DEFAULT_TABLES = [
    {
        "name": "students",
        "display_name": "Students",
        "voice_input": True,
        "columns": [
            _col("id", "serial", is_primary=True),
            _col("first_name", "string"),
            _col("last_name", "string"),
            _col("gender", "string"),
            _col("dob", "date"),
            _col("email", "string"),
            _col("primary_diagnosis", "text"),
            _col("comorbidity", "text"),
            _col("allergies", "text"),
            _col("blood_group", "string"),
            _col("transport", "string"),
            _col("address", "text"),
            _col("days_of_week", "array"),
            _col("timings", "array"),
            _col("enrollment_year", "integer"),
            _col("status", "string"),
            _col("strengths", "text"),
            _col("weakness", "text"),
            _col("comments", "text"),
            _col("center_id", "integer"),
            _col("created_at", "timestamp"),
        ],
    },
    {
        "name": "educators",
        "display_name": "Educators",
        "columns": [
            _col("id", "serial", is_primary=True),
            _col("name", "string"),
            _col("designation", "string"),
            _col("email", "string"),
            _col("phone", "string"),
            _col("date_of_birth", "date"),
            _col("date_of_joining", "date"),
            _col("work_location", "string"),
            _col("center_id", "integer"),
            _col("created_at", "timestamp"),
        ],
    },
    {
        "name": "employees",
        "display_name": "Employees",
        "columns": [
            _col("id", "serial", is_primary=True),
            _col("employee_id", "string"),
            _col("name", "string"),
            _col("gender", "string"),
            _col("designation", "string"),
            _col("department", "string"),
            _col("employment_type", "string"),
            _col("email", "string"),
            _col("password", "string"),
            _col("phone", "string"),
            _col("date_of_birth", "date"),
            _col("date_of_joining", "date"),
            _col("blood_group", "string"),
            _col("status", "string"),
            _col("center_id", "integer"),
            _col("created_at", "timestamp"),
        ],
    },
]


class Command(BaseCommand):
    help = "Create the default dashboard tables and register them as managed tables."

    def add_arguments(self, parser):
        parser.add_argument(
            "--register-only",
            action="store_true",
            help="Only register the tables (e.g. when they already exist in Supabase).",
        )
        parser.add_argument("--database", default=DEFAULT_DB_ALIAS)

    def handle(self, *args, **options):
        using = options["database"]
        connection = connections[using]
        with connection.cursor() as cursor:
            existing = set(connection.introspection.table_names(cursor))

        for position, definition in enumerate(DEFAULT_TABLES):
            table_name = definition["name"]

            if not options["register_only"]:
                if table_name in existing:
                    self.stdout.write(f"Table {table_name} already exists, skipping creation.")
                else:
                    try:
                        create_dynamic_table(table_name, definition["columns"], using=using)
                    except ValueError as e:
                        raise CommandError(f"Could not create {table_name}: {e}")
                    self.stdout.write(self.style.SUCCESS(f"Table '{table_name}' created successfully."))

            _, created = ManagedTable.objects.using(using).update_or_create(
                name=table_name,
                defaults={
                    "display_name": definition["display_name"],
                    "voice_input": definition.get("voice_input", False),
                    "position": position,
                },
            )
            verb = "Registered" if created else "Updated"
            self.stdout.write(f"{verb} managed table {table_name}.")
