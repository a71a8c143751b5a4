"""Tests for the EMR store engine and session dependency."""
from sqlalchemy import text

from hip_bundler.database import create_emr_engine, get_db


def test_engine_checks_pooled_connections():
    engine = create_emr_engine("sqlite:////tmp/test_hip_engine.db")

    assert engine.pool._pre_ping is True
    with engine.connect() as connection:
        assert connection.execute(text("SELECT 1")).scalar() == 1


def test_get_db_closes_session():
    dependency = get_db()
    db = next(dependency)

    assert db is not None
    dependency.close()
