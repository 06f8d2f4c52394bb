"""The Alembic migration builds the same schema the models describe."""

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

MIGRATIONS = Path(__file__).resolve().parents[1] / "migrations"


def _config(url):
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def test_upgrade_and_downgrade(tmp_path):
    url = "sqlite:///{}".format(tmp_path / "migrated.db")
    cfg = _config(url)

    command.upgrade(cfg, "head")

    engine = create_engine(url)
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    assert {
        "users", "courses", "course_enrollments", "attendance_records",
        "assessments", "risk_assessments",
    } <= tables
    attendance_columns = {c["name"] for c in inspector.get_columns("attendance_records")}
    assert {"submission_time", "flag_reasons", "reviewed_by", "code_expires_at"} <= attendance_columns
    engine.dispose()

    command.downgrade(cfg, "base")

    engine = create_engine(url)
    assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    engine.dispose()
