from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from coverdesk.core.config import get_settings
from coverdesk.db.base import Base

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "database" / "migrations"


def test_migrations_create_every_model_table(tmp_path, monkeypatch):
    database_url = f"sqlite+pysqlite:///{tmp_path / 'coverdesk.db'}"
    monkeypatch.setenv("DATABASE_URL", database_url)
    get_settings.cache_clear()
    # No ini file, so the test run keeps its own logging setup.
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    try:
        command.upgrade(config, "head")
    finally:
        get_settings.cache_clear()

    engine = create_engine(database_url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert set(Base.metadata.tables) <= tables
    assert "alembic_version" in tables
