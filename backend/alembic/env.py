import sys
from logging.config import fileConfig

from alembic import context
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, text

sys.path.append(".")

from carbon_ledger import models  # noqa: E402,F401
from carbon_ledger.config import settings  # noqa: E402
from carbon_ledger.database import Base  # noqa: E402

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=settings.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def _stamp_sqlite_bootstrapped_schema(connection) -> None:
    """SQLite dev DBs are created by reset_dev_db.py via create_all(); stamp head for them."""

    if connection.dialect.name != "sqlite":
        return
    has_version_table = bool(
        connection.execute(
            text(
                "select 1 from sqlite_master where type='table' and name='alembic_version' limit 1"
            )
        ).scalar()
    )
    if has_version_table and int(
        connection.execute(text("select count(*) from alembic_version")).scalar() or 0
    ):
        return
    interventions_exists = bool(
        connection.execute(
            text("select 1 from sqlite_master where type='table' and name='interventions' limit 1")
        ).scalar()
    )
    if not interventions_exists:
        return

    head = ScriptDirectory.from_config(config).get_current_head()
    if not head:
        return
    connection.execute(
        text(
            "CREATE TABLE IF NOT EXISTS alembic_version ("
            "version_num VARCHAR(128) NOT NULL, "
            "CONSTRAINT alembic_version_pkc PRIMARY KEY (version_num))"
        )
    )
    connection.execute(text("delete from alembic_version"))
    connection.execute(
        text("insert into alembic_version(version_num) values (:v)"), {"v": head}
    )
    connection.commit()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    provided_connection = config.attributes.get("connection")

    if provided_connection is not None:
        connection = provided_connection
        should_close = False
    else:
        connectable = create_engine(settings.database_url, future=True)
        connection = connectable.connect()
        should_close = True

    try:
        _stamp_sqlite_bootstrapped_schema(connection)

        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()
    finally:
        if should_close:
            connection.close()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
