"""The alembic migrations build the same schema the models describe."""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError

ALEMBIC_DIR = Path(__file__).resolve().parents[1] / "alembic"


@pytest.fixture
def migrated(tmp_path):
    url = f"sqlite:///{tmp_path / 'store.db'}"
    cfg = Config()
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    cfg.set_main_option("sqlalchemy.url", url)
    command.upgrade(cfg, "head")
    engine = create_engine(url)
    yield cfg, engine
    engine.dispose()


def test_upgrade_creates_store_tables(migrated):
    _, engine = migrated
    tables = set(inspect(engine).get_table_names())
    assert {"products", "orders", "order_items", "alembic_version_store"} <= tables

    columns = {c["name"] for c in inspect(engine).get_columns("order_items")}
    assert {"order_id", "product_id", "quantity", "cost", "extra_data", "reserved"} <= columns


def test_stock_cannot_go_negative(migrated):
    _, engine = migrated
    with pytest.raises(IntegrityError):
        with engine.begin() as conn:
            conn.execute(text("INSERT INTO products (name, cost, stock, max_quantity, enabled) VALUES ('tee', 10, -1, 1, 1)"))


def test_downgrade_drops_everything(migrated):
    cfg, engine = migrated
    command.downgrade(cfg, "base")
    assert set(inspect(engine).get_table_names()) <= {"alembic_version_store"}
