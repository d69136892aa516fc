"""
Field type inference for dashboard tables.

Columns carry no declared type, so the kind of each column is inferred from
its name (and, for booleans, from the values seen when the table is loaded).
The result is a per-table schema of FieldSpec objects that formatters and
drafts consult instead of re-running the heuristics on every render.
"""
from dataclasses import dataclass, field
from enum import Enum

from django.forms.utils import pretty_name


class FieldKind(str, Enum):
    DATE = "date"
    ARRAY = "array"
    BOOLEAN = "boolean"
    SELECT = "select"
    PASSWORD = "password"
    LONG_TEXT = "long_text"
    NUMERIC = "numeric"
    TEXT = "text"


DAYS_OF_WEEK = (
    ("1", "Monday"),
    ("2", "Tuesday"),
    ("3", "Wednesday"),
    ("4", "Thursday"),
    ("5", "Friday"),
    ("6", "Saturday"),
    ("7", "Sunday"),
)

SELECT_OPTIONS = {
    "gender": ("Male", "Female", "Other", "Prefer not to say"),
    "blood_group": ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-", "Unknown"),
    "status": ("Active", "Inactive", "On Leave", "Graduated", "Transferred"),
    "priority": ("High", "Medium", "Low"),
    "session_type": ("Individual", "Group", "Online", "Hybrid"),
    "employment_type": ("Full-time", "Part-time", "Contract", "Intern", "Volunteer"),
    "transport": ("School Bus", "Parent Drop", "Public Transport", "Self", "Not Required"),
}

DATE_FIELDS = frozenset(["dob", "created_at"])
ARRAY_FIELDS = frozenset(["days_of_week", "timings"])
BOOLEAN_FIELDS = frozenset(["attendance"])
PASSWORD_FIELDS = frozenset(["password"])
LONG_TEXT_FIELDS = frozenset([
    "address",
    "comments",
    "description",
    "strengths",
    "weakness",
    "primary_diagnosis",
    "comorbidity",
    "allergies",
])
NUMERIC_MARKERS = ("_id", "number", "year")

# Filled in by the backend when left empty on create.
SERVER_DEFAULT_FIELDS = frozenset(["created_at"])


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: FieldKind
    options: tuple = ()
    option_labels: dict = field(default_factory=dict)
    input_type: str = "text"

    @property
    def label(self):
        return pretty_name(self.name)

    @property
    def is_enum_array(self):
        return self.kind is FieldKind.ARRAY and bool(self.options)

    def option_label(self, value):
        key = str(value)
        return self.option_labels.get(key, key)

    def as_dict(self):
        data = {"name": self.name, "label": self.label, "kind": self.kind.value}
        if self.options:
            data["options"] = [
                {"value": option, "label": self.option_label(option)}
                for option in self.options
            ]
        if self.kind is FieldKind.TEXT:
            data["input_type"] = self.input_type
        return data


def classify(name, sample=None):
    """Infer the FieldSpec for a column, in fixed priority order."""
    if "date" in name or name in DATE_FIELDS:
        return FieldSpec(name, FieldKind.DATE, input_type="date")

    if name in ARRAY_FIELDS or "array" in name:
        if name == "days_of_week":
            return FieldSpec(
                name,
                FieldKind.ARRAY,
                options=tuple(value for value, _ in DAYS_OF_WEEK),
                option_labels=dict(DAYS_OF_WEEK),
            )
        return FieldSpec(name, FieldKind.ARRAY)

    if "is_" in name or name in BOOLEAN_FIELDS or isinstance(sample, bool):
        return FieldSpec(name, FieldKind.BOOLEAN)

    if name in SELECT_OPTIONS:
        return FieldSpec(name, FieldKind.SELECT, options=SELECT_OPTIONS[name])

    if name in PASSWORD_FIELDS:
        return FieldSpec(name, FieldKind.PASSWORD, input_type="password")

    if name in LONG_TEXT_FIELDS:
        return FieldSpec(name, FieldKind.LONG_TEXT)

    if any(marker in name for marker in NUMERIC_MARKERS):
        return FieldSpec(name, FieldKind.NUMERIC, input_type="number")

    if "email" in name:
        return FieldSpec(name, FieldKind.TEXT, input_type="email")
    return FieldSpec(name, FieldKind.TEXT)


def _first_sample(column, rows):
    for row in rows:
        value = row.get(column)
        if value is not None:
            return value
    return None


def resolve_schema(columns, rows=()):
    """Build the ordered column -> FieldSpec mapping for a loaded table."""
    return {
        column: classify(column, _first_sample(column, rows))
        for column in columns
    }


def identifier_column(table_name, columns):
    if "id" in columns:
        return "id"

    singular = table_name[:-1] if table_name.endswith("s") else table_name
    if f"{singular}_id" in columns:
        return f"{singular}_id"

    for column in columns:
        if column.endswith("_id"):
            return column
    return None
