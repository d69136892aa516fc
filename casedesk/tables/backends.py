"""
Collection backends used by the table controller.

A backend knows how to list the columns of a table and how to select,
insert, update and delete its rows. Two implementations are provided:

SupabaseBackend talks to a Supabase project through the ``supabase`` client.
Column metadata comes from a Postgres function exposed over RPC, e.g.::

    create or replace function get_table_columns(table_name text)
    returns table (column_name text)
    language sql stable as $$
        select c.column_name::text
        from information_schema.columns c
        where c.table_schema = 'public' and c.table_name = $1
        order by c.ordinal_position;
    $$;

DatabaseBackend runs SQL directly on one of the Django database connections.
"""
import functools
import json
import logging

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import DEFAULT_DB_ALIAS, DatabaseError, connections, transaction
from django.utils.module_loading import import_string
from postgrest.exceptions import APIError
from supabase import create_client

from .exceptions import ColumnFetchError, MutationError, RecordNotFound, RowFetchError


logger = logging.getLogger(__name__)


class CollectionBackend:
    """Row storage for dashboard tables.

    ``scope`` arguments are ``(column, value)`` pairs restricting rows to one
    owner partition, or None for every row.
    """

    def fetch_columns(self, table_name):
        raise NotImplementedError

    def select(self, table_name, scope=None):
        raise NotImplementedError

    def insert(self, table_name, rows):
        raise NotImplementedError

    def update(self, table_name, values, key, key_value):
        raise NotImplementedError

    def delete(self, table_name, key, key_value):
        raise NotImplementedError


class SupabaseBackend(CollectionBackend):
    def __init__(self, client=None, columns_rpc=None):
        self._client = client
        self.columns_rpc = columns_rpc or settings.SUPABASE_COLUMNS_RPC

    @property
    def client(self):
        if self._client is None:
            if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
                raise ImproperlyConfigured("SUPABASE_URL and SUPABASE_KEY must be set.")
            self._client = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
        return self._client

    def fetch_columns(self, table_name):
        try:
            response = self.client.rpc(self.columns_rpc, {"table_name": table_name}).execute()
        except APIError as e:
            logger.error(f"Column fetch failed for {table_name}: {e}")
            raise ColumnFetchError(str(e)) from e

        columns = [row["column_name"] for row in response.data or []]
        if not columns:
            raise ColumnFetchError(f"No columns found for table {table_name}.")
        return columns

    def select(self, table_name, scope=None):
        query = self.client.table(table_name).select("*")
        if scope is not None:
            column, value = scope
            query = query.eq(column, value)
        try:
            response = query.execute()
        except APIError as e:
            logger.error(f"Row fetch failed for {table_name}: {e}")
            raise RowFetchError(str(e)) from e
        return response.data or []

    def insert(self, table_name, rows):
        try:
            response = self.client.table(table_name).insert(rows).execute()
        except APIError as e:
            logger.error(f"Insert into {table_name} failed: {e}")
            raise MutationError(str(e)) from e
        return response.data or []

    def update(self, table_name, values, key, key_value):
        try:
            response = self.client.table(table_name).update(values).eq(key, key_value).execute()
        except APIError as e:
            logger.error(f"Update of {table_name} failed: {e}")
            raise MutationError(str(e)) from e
        if not response.data:
            raise RecordNotFound(key, key_value)
        return response.data

    def delete(self, table_name, key, key_value):
        try:
            response = self.client.table(table_name).delete().eq(key, key_value).execute()
        except APIError as e:
            logger.error(f"Delete from {table_name} failed: {e}")
            raise MutationError(str(e)) from e
        if not response.data:
            raise RecordNotFound(key, key_value)


class DatabaseBackend(CollectionBackend):
    def __init__(self, using=DEFAULT_DB_ALIAS):
        self.using = using

    @property
    def connection(self):
        return connections[self.using]

    def _quote(self, name):
        return self.connection.ops.quote_name(name)

    def _adapt(self, value):
        if isinstance(value, (list, dict)):
            return json.dumps(value)
        return value

    def _rows(self, cursor):
        column_names = [col[0] for col in cursor.description]
        return [dict(zip(column_names, row)) for row in cursor.fetchall()]

    def _check_columns(self, table_name, names):
        valid_columns = set(self.fetch_columns(table_name))
        invalid_columns = [name for name in names if name not in valid_columns]
        if invalid_columns:
            raise MutationError(f"Invalid columns: {', '.join(invalid_columns)}.")

    def fetch_columns(self, table_name):
        introspection = self.connection.introspection
        try:
            with self.connection.cursor() as cursor:
                if table_name not in introspection.table_names(cursor):
                    raise ColumnFetchError(f"Table {table_name} not found in the database.")
                description = introspection.get_table_description(cursor, table_name)
        except DatabaseError as e:
            logger.error(f"Column fetch failed for {table_name}: {e}")
            raise ColumnFetchError(str(e)) from e

        if not description:
            raise ColumnFetchError(f"No columns found for table {table_name}.")
        return [col.name for col in description]

    def select(self, table_name, scope=None):
        query = f"SELECT * FROM {self._quote(table_name)}"
        params = []
        if scope is not None:
            column, value = scope
            query += f" WHERE {self._quote(column)} = %s"
            params.append(value)

        try:
            with self.connection.cursor() as cursor:
                cursor.execute(query, params)
                return self._rows(cursor)
        except DatabaseError as e:
            logger.error(f"Row fetch failed for {table_name}: {e}")
            raise RowFetchError(str(e)) from e

    def insert(self, table_name, rows):
        names = {name for row in rows for name in row}
        self._check_columns(table_name, names)

        inserted = []
        try:
            with transaction.atomic(using=self.using), self.connection.cursor() as cursor:
                for record in rows:
                    if record:
                        placeholders = ", ".join(["%s"] * len(record))
                        column_names = ", ".join(self._quote(name) for name in record)
                        insert_query = (
                            f"INSERT INTO {self._quote(table_name)} ({column_names}) "
                            f"VALUES ({placeholders}) RETURNING *"
                        )
                    else:
                        insert_query = f"INSERT INTO {self._quote(table_name)} DEFAULT VALUES RETURNING *"
                    cursor.execute(insert_query, [self._adapt(value) for value in record.values()])
                    inserted.extend(self._rows(cursor))
        except DatabaseError as e:
            logger.error(f"Insert into {table_name} failed: {e}")
            raise MutationError(str(e)) from e
        return inserted

    def update(self, table_name, values, key, key_value):
        if not values:
            raise MutationError("Nothing to update.")
        self._check_columns(table_name, list(values) + [key])

        set_clause = ", ".join(f"{self._quote(name)} = %s" for name in values)
        query = (
            f"UPDATE {self._quote(table_name)} SET {set_clause} "
            f"WHERE {self._quote(key)} = %s RETURNING *"
        )
        query_values = [self._adapt(value) for value in values.values()] + [key_value]

        try:
            with self.connection.cursor() as cursor:
                cursor.execute(query, query_values)
                updated = self._rows(cursor)
        except DatabaseError as e:
            logger.error(f"Update of {table_name} failed: {e}")
            raise MutationError(str(e)) from e

        if not updated:
            raise RecordNotFound(key, key_value)
        return updated

    def delete(self, table_name, key, key_value):
        self._check_columns(table_name, [key])
        query = f"DELETE FROM {self._quote(table_name)} WHERE {self._quote(key)} = %s"

        try:
            with self.connection.cursor() as cursor:
                cursor.execute(query, [key_value])
                deleted = cursor.rowcount
        except DatabaseError as e:
            logger.error(f"Delete from {table_name} failed: {e}")
            raise MutationError(str(e)) from e

        if deleted == 0:
            raise RecordNotFound(key, key_value)


@functools.lru_cache(maxsize=None)
def get_backend():
    backend_class = import_string(settings.CASEDESK_BACKEND)
    return backend_class()
