# Overview: Pytest coverage that the Alembic revision builds the same schema as the models.

import importlib.util
from pathlib import Path

import sqlalchemy as sa
from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext

from shopledger.extensions import db

VERSIONS_DIR = Path(__file__).resolve().parents[1] / "migrations" / "versions"


def _load_revision(filename: str):
    spec = importlib.util.spec_from_file_location(filename[:-3], VERSIONS_DIR / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_initial_revision_matches_models(app):
    revision = _load_revision("b7e1c2d3a4f5_initial_shop_schema.py")
    engine = sa.create_engine("sqlite://")

    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            revision.upgrade()

        inspector = sa.inspect(conn)
        for table in db.metadata.sorted_tables:
            migrated = {c["name"] for c in inspector.get_columns(table.name)}
            assert migrated == {c.name for c in table.columns}, table.name

        fks = inspector.get_foreign_keys("order_items")
        order_fk = next(fk for fk in fks if fk["referred_table"] == "orders")
        assert order_fk["options"].get("ondelete") == "CASCADE"

        with Operations.context(MigrationContext.configure(conn)):
            revision.downgrade()

        assert sa.inspect(conn).get_table_names() == []
