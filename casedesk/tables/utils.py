from django.db import connections, DEFAULT_DB_ALIAS, models


FIELD_CLASSES = {
    "serial": models.AutoField,
    "string": models.CharField,
    "text": models.TextField,
    "int": models.IntegerField,
    "integer": models.IntegerField,
    "float": models.FloatField,
    "boolean": models.BooleanField,
    "date": models.DateField,
    "timestamp": models.DateTimeField,
    "array": models.JSONField,
}


def build_dynamic_model(table_name, columns):
    attrs = {
        '__module__': __name__,
        'Meta': type('Meta', (object,), {'db_table': table_name, 'app_label': 'tables'}),
    }

    primary_key_set = False

    for col in columns:
        column_name = col['column_name']
        field_type = col['data_type'].lower()
        is_primary = col.get('is_primary', False)

        field_class = FIELD_CLASSES.get(field_type)
        if field_class is None:
            raise ValueError(f"Unsupported field type: {field_type}")

        options = {}
        if field_type == 'serial':
            if not is_primary:
                raise ValueError(f"Column '{column_name}' of type serial must be the primary key.")
        else:
            options['null'] = col.get('is_nullable', True)
            options['unique'] = col.get('is_unique', False)
            if 'default_value' in col:
                options['default'] = col['default_value']
        if field_type == 'string':
            options['max_length'] = col.get('max_length', 255)

        if is_primary:
            if primary_key_set:
                raise ValueError("Only one column can be set as the primary key.")
            options['primary_key'] = True
            primary_key_set = True

        attrs[column_name] = field_class(**options)

    if not primary_key_set:
        raise ValueError("Primary key must be explicitly defined.")

    return type(table_name, (models.Model,), attrs)


def create_dynamic_table(table_name, columns, using=DEFAULT_DB_ALIAS):
    dynamic_model = build_dynamic_model(table_name, columns)

    with connections[using].schema_editor() as schema_editor:
        schema_editor.create_model(dynamic_model)

    return dynamic_model


def drop_dynamic_table(dynamic_model, using=DEFAULT_DB_ALIAS):
    with connections[using].schema_editor() as schema_editor:
        schema_editor.delete_model(dynamic_model)
