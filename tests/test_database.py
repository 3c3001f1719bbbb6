"""Tests for Database CRUD operations."""

from __future__ import annotations

import pytest

from carddav_db.database import Database
from carddav_db.errors import ConditionUsageError, QueryError, UnexpectedRowCountError
from tests._support.mock_db import executed_params, executed_sql


def add_contact(db: Database, abook_id: str, name: str, **extra) -> str:
    columns = ["abook_id", "name", "vcard", "etag", "uri", "cuid", *extra]
    values = [abook_id, name, "BEGIN:VCARD", f"etag-{name}", f"{name}.vcf", f"uid-{name}", *extra.values()]
    return db.insert("contacts", columns, values)


class TestTableNames:
    def test_prefix_and_namespace(self, sqlite_conn):
        db = Database(sqlite_conn, "sqlite", table_prefix="rc_")
        assert db.table_name("contacts") == "rc_carddav_contacts"
        assert db.quoted_table("contacts") == '"rc_carddav_contacts"'

    def test_mysql_quoting(self, mock_conn):
        assert Database(mock_conn, "mysql").quoted_table("groups") == "`carddav_groups`"


class TestInsert:
    def test_returns_generated_id(self, schema_db, abook_id):
        dbid = add_contact(schema_db, abook_id, "ann")
        assert dbid != ""
        assert schema_db.lookup(dbid, "name")["name"] == "ann"

    def test_association_table_returns_empty_string(self, schema_db, abook_id):
        contact_id = add_contact(schema_db, abook_id, "ann")
        group_id = schema_db.insert("groups", ["abook_id", "name"], [abook_id, "Friends"])

        assert schema_db.insert("group_user", ["group_id", "contact_id"], [group_id, contact_id]) == ""
        assert len(schema_db.get({"group_id": group_id}, "contact_id", "group_user")) == 1

    def test_column_value_mismatch(self, schema_db):
        with pytest.raises(ValueError):
            schema_db.insert("groups", ["abook_id", "name"], ["1"])

    def test_constraint_violation_is_query_error(self, schema_db):
        with pytest.raises(QueryError) as exc_info:
            schema_db.insert("groups", ["name"], ["orphan"])

        assert exc_info.value.context.table == "groups"
        assert "INSERT INTO" in exc_info.value.context.sql

    def test_postgres_uses_returning(self, mock_conn):
        mock_conn.cursor.return_value.fetchone.return_value = (42,)
        db = Database(mock_conn, "postgres")

        assert db.insert("groups", ["abook_id", "name"], ["1", "Friends"]) == "42"
        assert executed_sql(mock_conn) == [
            'INSERT INTO "carddav_groups" ("abook_id", "name") VALUES (%s, %s) RETURNING "id"'
        ]
        assert executed_params(mock_conn) == [("1", "Friends")]

    def test_mysql_uses_lastrowid(self, mock_conn):
        mock_conn.cursor.return_value.lastrowid = 7
        db = Database(mock_conn, "mysql")

        assert db.insert("groups", ["abook_id", "name"], ["1", "Friends"]) == "7"
        assert "RETURNING" not in executed_sql(mock_conn)[0]

    def test_missing_generated_id(self, mock_conn):
        mock_conn.cursor.return_value.fetchone.return_value = None
        db = Database(mock_conn, "postgres")

        with pytest.raises(QueryError, match="no generated id"):
            db.insert("groups", ["abook_id", "name"], ["1", "Friends"])


class TestGet:
    def test_all_rows_without_conditions(self, schema_db, abook_id):
        add_contact(schema_db, abook_id, "ann")
        add_contact(schema_db, abook_id, "bob")

        names = sorted(row["name"] for row in schema_db.get(None, "name"))
        assert names == ["ann", "bob"]

    def test_column_list(self, schema_db, abook_id):
        dbid = add_contact(schema_db, abook_id, "ann")
        rows = schema_db.get(dbid, "id, name, etag")
        assert rows == [{"id": int(dbid), "name": "ann", "etag": "etag-ann"}]

    def test_case_insensitive_pattern(self, schema_db, abook_id):
        add_contact(schema_db, abook_id, "ann", email="Ann@Example.com")
        add_contact(schema_db, abook_id, "bob", email="bob@other.org")

        rows = schema_db.get({"%email": "%@example.COM"}, "name")
        assert rows == [{"name": "ann"}]

    def test_negated_null(self, schema_db, abook_id):
        add_contact(schema_db, abook_id, "ann", email="ann@example.com")
        add_contact(schema_db, abook_id, "bob")

        assert schema_db.get({"!email": None}, "name") == [{"name": "ann"}]
        assert schema_db.get({"email": None}, "name") == [{"name": "bob"}]

    def test_usage_error_before_any_statement(self, mock_conn):
        db = Database(mock_conn, "sqlite")
        with pytest.raises(ConditionUsageError):
            db.get({"id": []})
        assert executed_sql(mock_conn) == []

    def test_unknown_table(self, schema_db):
        with pytest.raises(QueryError, match="no such table"):
            schema_db.get(None, "*", "nonexistent")


class TestLookup:
    def test_exactly_one(self, schema_db, abook_id):
        add_contact(schema_db, abook_id, "ann")
        assert schema_db.lookup({"uri": "ann.vcf"}, "cuid")["cuid"] == "uid-ann"

    def test_no_match(self, schema_db, abook_id):
        with pytest.raises(UnexpectedRowCountError) as exc_info:
            schema_db.lookup({"uri": "missing.vcf"})
        assert exc_info.value.row_count == 0
        assert "'missing.vcf'" in exc_info.value.message

    def test_several_matches(self, schema_db, abook_id):
        add_contact(schema_db, abook_id, "ann")
        add_contact(schema_db, abook_id, "bob")

        with pytest.raises(UnexpectedRowCountError) as exc_info:
            schema_db.lookup({"abook_id": abook_id})
        assert exc_info.value.row_count == 2


class TestUpdate:
    def test_returns_rowcount(self, schema_db, abook_id):
        add_contact(schema_db, abook_id, "ann")
        add_contact(schema_db, abook_id, "bob")

        assert schema_db.update({"abook_id": abook_id}, ["showas"], ["COMPANY"]) == 2
        assert {r["showas"] for r in schema_db.get(None, "showas")} == {"COMPANY"}

    def test_values_bound_before_condition_params(self, mock_conn):
        mock_conn.cursor.return_value.rowcount = 1
        db = Database(mock_conn, "postgres")

        db.update({"abook_id": "3", "!%name": "x%"}, ["etag", "vcard"], ["e1", "v1"])

        assert executed_sql(mock_conn) == [
            'UPDATE "carddav_contacts" SET "etag" = %s, "vcard" = %s '
            'WHERE "abook_id" = %s AND "name" NOT ILIKE %s'
        ]
        assert executed_params(mock_conn) == [("e1", "v1", "3", "x%")]


class TestDelete:
    def test_delete_by_id_list(self, schema_db):
        schema_db.execute(
            "INSERT INTO carddav_accounts (user_id, accountname, username, password) "
            "VALUES (1, 'a', 'u', 'p')"
        )
        for n in range(3):
            schema_db.insert("addressbooks", ["account_id", "name", "url"], [1, f"ab{n}", f"https://x/{n}"])

        assert schema_db.delete({"id": ["1", "2", "3"]}, "addressbooks") == 3
        assert schema_db.get(None, "id", "addressbooks") == []

    def test_cascade_through_foreign_keys(self, schema_db, abook_id):
        add_contact(schema_db, abook_id, "ann")
        schema_db.delete(abook_id, "addressbooks")
        assert schema_db.get(None, "id") == []


class TestTableExists:
    def test_exists(self, schema_db):
        assert schema_db.table_exists("contacts")
        assert not schema_db.table_exists("nonexistent")


class TestCursorRelease:
    def test_get_closes_cursor(self, mock_conn):
        Database(mock_conn, "mysql").get(None, "*", "contacts")
        mock_conn.cursor.return_value.close.assert_called_once()

    def test_table_exists_closes_cursor(self, mock_conn):
        Database(mock_conn, "mysql").table_exists("contacts")
        mock_conn.cursor.return_value.close.assert_called_once()

    def test_insert_closes_cursor(self, mock_conn):
        mock_conn.cursor.return_value.fetchone.return_value = (5,)
        Database(mock_conn, "postgres").insert("groups", ["abook_id", "name"], ["1", "Friends"])
        mock_conn.cursor.return_value.close.assert_called_once()

    def test_update_and_delete_close_cursors(self, mock_conn):
        mock_conn.cursor.return_value.rowcount = 1
        db = Database(mock_conn, "mysql")

        db.update("3", ["name"], ["x"], "groups")
        db.delete("3", "groups")

        assert mock_conn.cursor.return_value.close.call_count == 2

    def test_failed_statement_closes_cursor(self, mock_conn):
        mock_conn.cursor.return_value.execute.side_effect = RuntimeError("lost connection")

        with pytest.raises(QueryError):
            Database(mock_conn, "mysql").delete("3", "groups")

        mock_conn.cursor.return_value.close.assert_called_once()
