import importlib.util
import io
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

MIGRATION = (
    Path(__file__).resolve().parents[1]
    / "alembic"
    / "versions"
    / "202410190900_initial.py"
)


def _load_migration():
    spec = importlib.util.spec_from_file_location("initial_migration", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_postgres_upgrade_creates_category_type_once() -> None:
    migration = _load_migration()
    buf = io.StringIO()
    context = MigrationContext.configure(
        dialect_name="postgresql", opts={"as_sql": True, "output_buffer": buf}
    )

    with Operations.context(context):
        migration.upgrade()

    sql = buf.getvalue()
    assert sql.count("CREATE TYPE expensecategory") == 1
    assert "CREATE TABLE budgets" in sql


def test_sqlite_upgrade_and_downgrade() -> None:
    migration = _load_migration()
    engine = create_engine("sqlite:///:memory:")

    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            migration.upgrade()
        assert {"expenses", "budgets"} <= set(inspect(conn).get_table_names())
        with Operations.context(MigrationContext.configure(conn)):
            migration.downgrade()
        assert inspect(conn).get_table_names() == []
