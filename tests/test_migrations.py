import os

os.environ.setdefault("DB_BACKEND", "sqlite")

from sqlalchemy import create_engine, inspect

import core.config as config
from core.db import _ensure_schema_up_to_date, _get_schema_revisions


def test_migrations_create_schema(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'migrated.sqlite'}"
    monkeypatch.setattr(config, "DATABASE_URL", db_url)
    monkeypatch.setattr(config, "AUTO_MIGRATE_ON_STARTUP", True)
    engine = create_engine(db_url)
    try:
        current, head = _get_schema_revisions(engine)
        assert current is None
        assert head == "0001_initial_schema"

        _ensure_schema_up_to_date(engine)

        current, head = _get_schema_revisions(engine)
        assert current == head
        inspector = inspect(engine)
        assert {"users", "messages"} <= set(inspector.get_table_names())
        index_names = {index["name"] for index in inspector.get_indexes("messages")}
        assert {"ix_messages_pair_created", "ix_messages_receiver_status"} <= index_names
    finally:
        engine.dispose()
