"""
Unit tests for the PostgreSQL driver.

Tests the psycopg2 connection wrapper, statement building against a mock
connection, the column change sequence, and migrations bookkeeping.
"""

from unittest.mock import Mock, patch

import pytest

from dbmigrate.core.config import DriverConfig
from dbmigrate.core.exceptions import (
    ConnectionError,
    EngineError,
    ExecutionError,
    ValidationError,
)
from dbmigrate.core.types import MigrationRecord
from dbmigrate.engines.gateway import QueryResult
from dbmigrate.engines.pg import (
    PostgreSQLConnection,
    PostgreSQLDriver,
    parse_server_version,
)


class TestParseServerVersion:
    def test_full_banner(self):
        banner = "PostgreSQL 9.6.24 on x86_64-pc-linux-gnu, compiled by gcc 6.3.0"

        assert parse_server_version(banner) == (9, 6, 24)

    def test_no_triple(self):
        assert parse_server_version("PostgreSQL 16beta") is None

    def test_empty(self):
        assert parse_server_version("") is None


class TestPostgreSQLConnection:
    """Test PostgreSQL connection wrapper."""

    @pytest.fixture
    def mock_psycopg2_conn(self):
        """Create mock psycopg2 connection."""
        conn = Mock()
        cursor = Mock()
        cursor.closed = False
        cursor.description = [("version",)]
        cursor.rowcount = 1
        cursor.fetchall.return_value = [{"version": "PostgreSQL 15.4.0"}]
        conn.cursor.return_value = cursor
        return conn

    @pytest.fixture
    def pg_connection(self, mock_psycopg2_conn):
        return PostgreSQLConnection(mock_psycopg2_conn)

    def test_query_without_params(self, pg_connection, mock_psycopg2_conn):
        result = pg_connection.query("select version() as version")

        cursor = mock_psycopg2_conn.cursor.return_value
        cursor.execute.assert_called_once_with("select version() as version")
        assert result == QueryResult(rows=[{"version": "PostgreSQL 15.4.0"}], rowcount=1)

    def test_query_without_result_set(self, pg_connection, mock_psycopg2_conn):
        cursor = mock_psycopg2_conn.cursor.return_value
        cursor.description = None

        result = pg_connection.query("DROP TABLE users")

        cursor.fetchall.assert_not_called()
        assert result.rows == []

    def test_query_with_params_uses_prepared_statement(
        self, pg_connection, mock_psycopg2_conn
    ):
        pg_connection.query("INSERT INTO t (a, b) VALUES ($1, $2)", ["x", 2])

        cursor = mock_psycopg2_conn.cursor.return_value
        statements = [c.args[0] for c in cursor.execute.call_args_list]
        name = statements[0].split()[1]

        assert statements == [
            f"PREPARE {name} AS INSERT INTO t (a, b) VALUES ($1, $2)",
            f"EXECUTE {name} (%s, %s)",
            f"DEALLOCATE {name}",
        ]
        assert cursor.execute.call_args_list[1].args[1] == ["x", 2]

    def test_prepared_statement_names_unique(self, pg_connection, mock_psycopg2_conn):
        pg_connection.query("SELECT $1", [1])
        pg_connection.query("SELECT $1", [2])

        cursor = mock_psycopg2_conn.cursor.return_value
        prepares = [
            c.args[0] for c in cursor.execute.call_args_list if c.args[0].startswith("PREPARE")
        ]
        assert prepares[0].split()[1] != prepares[1].split()[1]

    def test_query_error(self, pg_connection, mock_psycopg2_conn):
        import psycopg2

        error = psycopg2.Error("relation does not exist")
        cursor = mock_psycopg2_conn.cursor.return_value
        cursor.execute.side_effect = error

        with pytest.raises(ExecutionError) as exc_info:
            pg_connection.query("SELECT * FROM missing")

        assert "SQL execution failed" in str(exc_info.value)
        assert exc_info.value.engine_name == "pg"
        assert exc_info.value.sql == "SELECT * FROM missing"
        assert exc_info.value.__cause__ is error
        assert exc_info.value.previous_exception is error

    def test_close(self, pg_connection, mock_psycopg2_conn):
        pg_connection.query("SELECT 1")
        pg_connection.close()

        mock_psycopg2_conn.cursor.return_value.close.assert_called_once()
        mock_psycopg2_conn.close.assert_called_once()


class TestPostgreSQLDriverConnect:
    """Test connection creation."""

    def test_driver_type(self, pg_driver):
        assert pg_driver.driver_type == "pg"

    @patch("dbmigrate.engines.pg.psycopg2")
    def test_connect_from_params(self, mock_psycopg2):
        raw = Mock()
        mock_psycopg2.connect.return_value = raw
        mock_psycopg2.Error = Exception
        config = DriverConfig(
            driver="pg", host="db", port=5432, user="app", password="secret", database="app"
        )

        driver = PostgreSQLDriver.connect(config)

        mock_psycopg2.connect.assert_called_once_with(
            host="db", port=5432, user="app", password="secret", dbname="app"
        )
        assert raw.autocommit is True
        assert isinstance(driver.gateway.connection, PostgreSQLConnection)

    @patch("dbmigrate.engines.pg.psycopg2")
    def test_connect_failure(self, mock_psycopg2):
        class FakeError(Exception):
            pass

        mock_psycopg2.Error = FakeError
        mock_psycopg2.connect.side_effect = FakeError("could not connect")
        config = DriverConfig(driver="pg", host="db", user="app", password="secret")

        with pytest.raises(ConnectionError) as exc_info:
            PostgreSQLDriver.connect(config)

        assert "secret" not in exc_info.value.connection_string
        assert exc_info.value.engine_name == "pg"

    @patch("dbmigrate.engines.pg.psycopg2", None)
    def test_connect_without_psycopg2(self):
        with pytest.raises(EngineError, match="psycopg2 is required"):
            PostgreSQLDriver.connect(DriverConfig(driver="pg"))

    def test_prebuilt_connection_used_directly(self, mock_connection):
        driver = PostgreSQLDriver.connect(DriverConfig(driver="pg", db=mock_connection))

        assert driver.gateway.connection is mock_connection


class TestPostgreSQLStatements:
    """Test SQL generated by the PostgreSQL driver."""

    def test_create_table(self, pg_driver, executed_sql):
        pg_driver.create_table(
            "users",
            {
                "id": {"type": "int", "primaryKey": True, "autoIncrement": True},
                "email": {"type": "string", "length": 100, "notNull": True},
            },
        )

        assert executed_sql() == [
            'CREATE TABLE "users" ("id"   SERIAL PRIMARY KEY, '
            '"email" VARCHAR (100) NOT NULL)'
        ]

    def test_create_table_composite_primary_key(self, pg_driver, executed_sql):
        pg_driver.create_table(
            "memberships",
            {
                "user_id": {"type": "int", "primaryKey": True, "notNull": True},
                "group_id": {"type": "int", "primaryKey": True, "notNull": True},
            },
        )

        assert executed_sql() == [
            'CREATE TABLE "memberships" ("user_id" INTEGER  NOT NULL, '
            '"group_id" INTEGER  NOT NULL, PRIMARY KEY ("user_id", "group_id"))'
        ]

    def test_create_table_if_not_exists(self, pg_driver, executed_sql):
        pg_driver.create_table("t", {"columns": {"a": "int"}, "ifNotExists": True})

        assert executed_sql() == ['CREATE TABLE IF NOT EXISTS "t" ("a" INTEGER  )']

    def test_create_table_invalid_column(self, pg_driver, mock_connection):
        with pytest.raises(ValidationError, match="Invalid table definition for t"):
            pg_driver.create_table("t", {"a": {"notNull": True}})

        mock_connection.query.assert_not_called()

    def test_drop_table(self, pg_driver, executed_sql):
        pg_driver.drop_table("users")
        pg_driver.drop_table("users", if_exists=True)

        assert executed_sql() == ['DROP TABLE "users"', 'DROP TABLE IF EXISTS "users"']

    def test_rename_table(self, pg_driver, executed_sql):
        pg_driver.rename_table("users", "accounts")

        assert executed_sql() == ['ALTER TABLE "users" RENAME TO "accounts"']

    def test_add_column(self, pg_driver, executed_sql):
        pg_driver.add_column("users", "age", {"type": "int", "notNull": True, "defaultValue": 0})

        assert executed_sql() == ['ALTER TABLE "users" ADD COLUMN "age" INTEGER  NOT NULL DEFAULT 0']

    def test_add_column_invalid_spec(self, pg_driver, mock_connection):
        with pytest.raises(ValidationError):
            pg_driver.add_column("users", "age", {"notNull": True, "bogus": 1})

        mock_connection.query.assert_not_called()

    def test_remove_column(self, pg_driver, executed_sql):
        pg_driver.remove_column("users", "age")

        assert executed_sql() == ['ALTER TABLE "users" DROP COLUMN "age"']

    def test_rename_column(self, pg_driver, executed_sql):
        pg_driver.rename_column("users", "mail", "email")

        assert executed_sql() == ['ALTER TABLE "users" RENAME COLUMN "mail" TO "email"']

    def test_add_index(self, pg_driver, executed_sql):
        pg_driver.add_index("users", "users_email_idx", "email")
        pg_driver.add_index("users", "users_name_idx", ["last", "first"], unique=True)

        assert executed_sql() == [
            'CREATE INDEX users_email_idx ON "users" ("email")',
            'CREATE UNIQUE INDEX users_name_idx ON "users" ("last", "first")',
        ]

    def test_remove_index(self, pg_driver, executed_sql):
        pg_driver.remove_index("users_email_idx")

        assert executed_sql() == ["DROP INDEX users_email_idx"]

    def test_add_foreign_key(self, pg_driver, executed_sql):
        pg_driver.add_foreign_key(
            "orders",
            "orders_customer_fk",
            ["customer_id"],
            "customers",
            ["id"],
            {"onDelete": "cascade", "onUpdate": "restrict"},
        )

        assert executed_sql() == [
            'ALTER TABLE "orders" ADD CONSTRAINT orders_customer_fk '
            'FOREIGN KEY("customer_id") REFERENCES "customers"("id") '
            "ON UPDATE RESTRICT ON DELETE CASCADE"
        ]

    def test_add_foreign_key_without_actions(self, pg_driver, executed_sql):
        pg_driver.add_foreign_key("orders", "fk", "customer_id", "customers", "id")

        assert executed_sql() == [
            'ALTER TABLE "orders" ADD CONSTRAINT fk FOREIGN KEY("customer_id") '
            'REFERENCES "customers"("id")'
        ]

    def test_remove_foreign_key(self, pg_driver, executed_sql):
        pg_driver.remove_foreign_key("orders", "orders_customer_fk")

        assert executed_sql() == ['ALTER TABLE "orders" DROP CONSTRAINT orders_customer_fk']

    def test_insert(self, pg_driver, executed_sql):
        pg_driver.insert("users", ["name", "age", "active", "note"], ["O'Brien", 42, True, None])

        assert executed_sql() == [
            "INSERT INTO \"users\" (\"name\",\"age\",\"active\",\"note\") "
            "VALUES ('O''Brien',42,TRUE,NULL);"
        ]

    def test_insert_count_mismatch(self, pg_driver, mock_connection):
        with pytest.raises(ValidationError) as exc_info:
            pg_driver.insert("users", ["a", "b"], [1])

        assert str(exc_info.value) == (
            "The number of columns does not match the number of values."
        )
        mock_connection.query.assert_not_called()

    def test_start_and_end_migration(self, pg_driver, executed_sql):
        pg_driver.start_migration()
        pg_driver.end_migration()

        assert executed_sql() == ["BEGIN;", "COMMIT;"]

    def test_dry_run(self, make_driver, mock_connection):
        driver = make_driver(PostgreSQLDriver, dry_run=True)

        assert driver.create_table("t", {"a": "int"}) is None
        assert driver.add_index("t", "t_a_idx", "a") is None

        mock_connection.query.assert_not_called()

    def test_close(self, pg_driver, mock_connection):
        pg_driver.close()

        mock_connection.close.assert_called_once()
        with pytest.raises(ConnectionError):
            pg_driver.run_sql("SELECT 1")


class TestPostgreSQLChangeColumn:
    """Test the three-step column change."""

    def test_full_sequence(self, pg_driver, executed_sql):
        pg_driver.change_column(
            "users", "email", {"type": "string", "notNull": True, "unique": True, "defaultValue": "n/a"}
        )

        assert executed_sql() == [
            'ALTER TABLE "users" ALTER COLUMN "email" SET NOT NULL',
            'ALTER TABLE "users" ADD CONSTRAINT users_email_unique UNIQUE ("email")',
            "ALTER TABLE \"users\" ALTER COLUMN \"email\" SET DEFAULT 'n/a'",
        ]

    def test_drop_variants(self, pg_driver, executed_sql):
        pg_driver.change_column("users", "email", {"type": "string", "unique": False})

        assert executed_sql() == [
            'ALTER TABLE "users" ALTER COLUMN "email" DROP NOT NULL',
            'ALTER TABLE "users" DROP CONSTRAINT users_email_unique',
            'ALTER TABLE "users" ALTER COLUMN "email" DROP DEFAULT',
        ]

    def test_unique_unset_skips_constraint(self, pg_driver, executed_sql):
        pg_driver.change_column("users", "age", {"type": "int", "defaultValue": 0})

        assert executed_sql() == [
            'ALTER TABLE "users" ALTER COLUMN "age" DROP NOT NULL',
            'ALTER TABLE "users" ALTER COLUMN "age" SET DEFAULT 0',
        ]

    def test_returns_last_result(self, pg_driver, mock_connection):
        last = QueryResult(rowcount=0)
        mock_connection.query.side_effect = [QueryResult(), QueryResult(), last]

        assert pg_driver.change_column("users", "email", {"type": "string", "unique": True}) is last

    def test_halts_on_first_error(self, pg_driver, mock_connection, executed_sql):
        failure = ExecutionError("column contains null values", engine_name="pg")
        mock_connection.query.side_effect = [failure]

        with pytest.raises(ExecutionError) as exc_info:
            pg_driver.change_column(
                "users", "email", {"type": "string", "notNull": True, "unique": True}
            )

        assert exc_info.value is failure
        assert executed_sql() == ['ALTER TABLE "users" ALTER COLUMN "email" SET NOT NULL']

    def test_halts_on_unique_error(self, pg_driver, mock_connection, executed_sql):
        failure = ExecutionError("duplicate key", engine_name="pg")
        mock_connection.query.side_effect = [QueryResult(), failure]

        with pytest.raises(ExecutionError):
            pg_driver.change_column("users", "email", {"type": "string", "unique": True})

        assert len(executed_sql()) == 2


class TestPostgreSQLBookkeeping:
    """Test migrations table handling."""

    MIGRATIONS_DDL = (
        'CREATE TABLE {}"migrations" ("id"   SERIAL PRIMARY KEY NOT NULL, '
        '"name" VARCHAR (255) NOT NULL, "run_on" TIMESTAMP  NOT NULL)'
    )

    def _respond(self, mock_connection, version, exists):
        def query(sql, params=None):
            if sql.startswith("select version()"):
                return QueryResult(rows=[{"version": version}])
            if "information_schema.tables" in sql:
                return QueryResult(rows=[{"table_name": "migrations"}] if exists else [])
            return QueryResult()

        mock_connection.query.side_effect = query

    def test_creates_with_if_not_exists(self, pg_driver, mock_connection, executed_sql):
        self._respond(mock_connection, "PostgreSQL 9.4.26 on x86_64", exists=False)

        pg_driver.create_migrations_table()

        statements = executed_sql()
        assert statements[0] == "select version() as version"
        assert statements[1] == (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_name = $1"
        )
        assert mock_connection.query.call_args_list[1].args[1] == ["migrations"]
        assert statements[2] == self.MIGRATIONS_DDL.format("IF NOT EXISTS ")

    def test_old_server_without_if_not_exists(self, pg_driver, mock_connection, executed_sql):
        self._respond(mock_connection, "PostgreSQL 9.0.23 on x86_64", exists=False)

        pg_driver.create_migrations_table()

        assert executed_sql()[-1] == self.MIGRATIONS_DDL.format("")

    def test_unparsable_version(self, pg_driver, mock_connection, executed_sql):
        self._respond(mock_connection, "PostgreSQL 16.2", exists=False)

        pg_driver.create_migrations_table()

        assert executed_sql()[-1] == self.MIGRATIONS_DDL.format("")

    def test_existing_table_not_recreated(self, pg_driver, mock_connection, executed_sql):
        self._respond(mock_connection, "PostgreSQL 12.1.0", exists=True)

        assert pg_driver.create_migrations_table() is None
        assert pg_driver.create_migrations_table() is None

        assert not any(sql.startswith("CREATE TABLE") for sql in executed_sql())

    def test_add_migration_record(self, pg_driver, mock_connection):
        with patch("dbmigrate.engines.base.datetime") as mock_datetime:
            mock_datetime.now.return_value.strftime.return_value = "2024-01-02 03:04:05"
            pg_driver.add_migration_record("20240102-create-users")

        mock_connection.query.assert_called_once_with(
            'INSERT INTO "migrations" (name, run_on) VALUES ($1, $2)',
            ["20240102-create-users", "2024-01-02 03:04:05"],
        )
        mock_datetime.now.return_value.strftime.assert_called_once_with("%Y-%m-%d %H:%M:%S")

    def test_all_loaded_migrations(self, pg_driver, mock_connection):
        mock_connection.query.return_value = QueryResult(
            rows=[
                {"id": 2, "name": "b", "run_on": "2024-01-02 00:00:00"},
                {"id": 1, "name": "a", "run_on": "2024-01-01 00:00:00"},
            ]
        )

        records = pg_driver.all_loaded_migrations()

        mock_connection.query.assert_called_once_with(
            'SELECT * FROM "migrations" ORDER BY run_on DESC, name DESC', None
        )
        assert records == [
            MigrationRecord(name="b", run_on="2024-01-02 00:00:00", id=2),
            MigrationRecord(name="a", run_on="2024-01-01 00:00:00", id=1),
        ]
