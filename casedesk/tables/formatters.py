"""
Display strings, edit controls and storage coercion for table fields.

Every function here takes a FieldSpec (see field_types.resolve_schema), so a
column is classified once per table load rather than on every call.
"""
import datetime
import json
import logging
import re

from django.utils import formats, timezone
from django.utils.dateparse import parse_date, parse_datetime

from .exceptions import FieldValueError
from .field_types import FieldKind, classify


logger = logging.getLogger(__name__)

EMPTY_DISPLAY = "-"
PASSWORD_MASK = "•" * 8

TRUE_VALUES = frozenset(["true", "yes", "y", "1"])
FALSE_VALUES = frozenset(["false", "no", "n", "0"])

# Leading zeros ("007", "0987654321") mark text identifiers, not numbers.
NUMBER_RE = re.compile(r"^-?(0|[1-9]\d*)(\.\d+)?$")

EDIT = "edit"
DISPLAY = "display"


def is_empty(value):
    return value is None or (isinstance(value, str) and value.strip() == "")


def _to_number(token):
    if not isinstance(token, str) or not NUMBER_RE.match(token.strip()):
        return token
    token = token.strip()
    if "." in token:
        return float(token)
    return int(token)


def parse_array(value, field_name=""):
    """Turn a stored or typed array value into a list.

    JSON-looking strings are tried first; anything that fails to parse falls
    back to a plain comma-separated list.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if not isinstance(value, str):
        return [value]

    text = value.strip()
    if not text:
        return []

    if text.startswith("[") and text.endswith("]"):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Error parsing JSON array for {field_name}: {e}")
        else:
            if isinstance(parsed, list):
                return parsed

    return [item.strip() for item in text.split(",") if item.strip()]


def as_date(value):
    """Return a date/datetime for value, or None if it is absent or invalid."""
    if isinstance(value, datetime.datetime):
        if timezone.is_aware(value):
            return timezone.localtime(value)
        return value
    if isinstance(value, datetime.date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        parsed = parse_date(text) or parse_datetime(text)
    except ValueError:
        return None
    if isinstance(parsed, datetime.datetime) and timezone.is_aware(parsed):
        return timezone.localtime(parsed)
    return parsed


def iso_date(value):
    parsed = as_date(value)
    if parsed is None:
        return None
    if isinstance(parsed, datetime.datetime):
        parsed = parsed.date()
    return parsed.isoformat()


# Display

def format_display(spec, value):
    kind = spec.kind

    if kind is FieldKind.ARRAY:
        items = parse_array(value, spec.name)
        if not items:
            return EMPTY_DISPLAY
        return ", ".join(spec.option_label(item) for item in items)

    if kind is FieldKind.DATE:
        parsed = as_date(value)
        if parsed is None:
            return EMPTY_DISPLAY
        return formats.date_format(parsed, "DATE_FORMAT")

    if kind is FieldKind.PASSWORD:
        return PASSWORD_MASK

    if kind is FieldKind.BOOLEAN:
        if value is True:
            return "Yes"
        if value is False:
            return "No"
        return EMPTY_DISPLAY

    if value is None:
        return EMPTY_DISPLAY
    return str(value)


# Edit controls

def edit_control(spec, value, required=False):
    kind = spec.kind
    control = {
        "name": spec.name,
        "label": spec.label,
        "required": required,
        "placeholder": f"Enter {spec.name.replace('_', ' ')}",
    }

    if kind is FieldKind.DATE:
        control.update(widget="date", value=iso_date(value), placeholder="Pick a date")

    elif kind is FieldKind.ARRAY and spec.is_enum_array:
        control.update(
            widget="multi-select",
            value=[str(item) for item in parse_array(value, spec.name)],
            options=spec.as_dict()["options"],
            placeholder="Select days",
        )

    elif kind is FieldKind.ARRAY:
        control.update(
            widget="text",
            value=", ".join(str(item) for item in parse_array(value, spec.name)),
            placeholder="Enter comma-separated values",
        )

    elif kind is FieldKind.BOOLEAN:
        current = "true" if value is True else "false" if value is False else ""
        control.update(
            widget="select",
            value=current,
            options=[
                {"value": "true", "label": "Yes"},
                {"value": "false", "label": "No"},
            ],
            placeholder="Select",
        )

    elif kind is FieldKind.SELECT:
        control.update(
            widget="select",
            value=value or "",
            options=spec.as_dict()["options"],
            placeholder=f"Select {spec.label}",
        )

    elif kind is FieldKind.PASSWORD:
        # The stored value never leaves the server.
        control.update(
            widget="input",
            input_type="password",
            value="",
            has_value=not is_empty(value),
            placeholder="Enter password",
        )

    elif kind is FieldKind.LONG_TEXT:
        control.update(widget="textarea", value=value or "", rows=3)

    elif kind is FieldKind.NUMERIC:
        control.update(
            widget="input",
            input_type="number",
            value="" if value is None else value,
        )

    else:
        control.update(
            widget="input",
            input_type=spec.input_type,
            value="" if value is None else value,
        )

    return control


# Storage coercion

def _coerce_date(spec, value):
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    text = str(value).strip()
    try:
        parsed = parse_date(text)
        if parsed is not None:
            return parsed.isoformat()
        parsed = parse_datetime(text)
    except ValueError:
        parsed = None
    if parsed is None:
        raise FieldValueError(spec.name, "Enter a valid date.")
    return parsed.isoformat()


def _coerce_array(spec, value):
    items = parse_array(value, spec.name)
    if not items:
        return None
    if not spec.is_enum_array:
        return [_to_number(item) for item in items]

    by_label = {label.lower(): option for option, label in spec.option_labels.items()}
    coerced = []
    for item in items:
        token = str(item).strip()
        if token in spec.options:
            coerced.append(token)
        elif token.lower() in by_label:
            coerced.append(by_label[token.lower()])
        else:
            raise FieldValueError(spec.name, f"'{token}' is not a valid choice.")
    return coerced


def _coerce_boolean(spec, value):
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    token = str(value).strip().lower()
    if token in TRUE_VALUES:
        return True
    if token in FALSE_VALUES:
        return False
    raise FieldValueError(spec.name, f"'{value}' is not a valid boolean.")


def _coerce_select(spec, value):
    token = str(value).strip()
    for option in spec.options:
        if option.lower() == token.lower():
            return option
    raise FieldValueError(spec.name, f"'{token}' is not a valid choice.")


def _coerce_numeric(spec, value):
    if isinstance(value, bool):
        raise FieldValueError(spec.name, "Enter a number.")
    if isinstance(value, (int, float)):
        return value
    return _to_number(str(value).strip())


def coerce_value(spec, value):
    """Convert a draft value to the shape stored by the backend.

    Empty values always become None, never an empty string.
    """
    if spec.kind is FieldKind.ARRAY:
        return _coerce_array(spec, value)

    if is_empty(value):
        return None

    if spec.kind is FieldKind.DATE:
        return _coerce_date(spec, value)
    if spec.kind is FieldKind.BOOLEAN:
        return _coerce_boolean(spec, value)
    if spec.kind is FieldKind.SELECT:
        return _coerce_select(spec, value)
    if spec.kind is FieldKind.NUMERIC:
        return _coerce_numeric(spec, value)
    if isinstance(value, str):
        return value
    return str(value)


def render(field_name, value, mode):
    """Render a single value without a resolved table schema."""
    spec = classify(field_name, value)
    if mode == EDIT:
        return edit_control(spec, value)
    if mode == DISPLAY:
        return format_display(spec, value)
    raise ValueError(f"Unknown render mode: {mode}")


def display_row(schema, row):
    return {column: format_display(spec, row.get(column)) for column, spec in schema.items()}
