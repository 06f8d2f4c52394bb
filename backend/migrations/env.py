"""Alembic environment for the UniTrack schema (online mode only)."""

from alembic import context
from sqlalchemy import create_engine

from unitrack.database import Base, DATABASE_URL
import unitrack.models  # noqa: F401  (registers tables on Base.metadata)

config = context.config
target_metadata = Base.metadata


def run_migrations_online() -> None:
    url = config.get_main_option("sqlalchemy.url") or DATABASE_URL
    connectable = create_engine(url)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()
    connectable.dispose()


run_migrations_online()
