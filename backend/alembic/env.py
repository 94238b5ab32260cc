from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context

from relohire.core.base import Base
from relohire.core.config import settings

from relohire.models.application import Application  # noqa: F401
from relohire.models.company import Company  # noqa: F401
from relohire.models.generated_document import GeneratedDocument  # noqa: F401
from relohire.models.job import Job  # noqa: F401
from relohire.models.payment import Payment  # noqa: F401
from relohire.models.payment_config import PaymentConfig  # noqa: F401
from relohire.models.question import Question  # noqa: F401
from relohire.models.user import User  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Migrations run with the DDL-capable migrator credentials when they are set.
if settings.DB_MIGRATOR_USER and settings.DB_MIGRATOR_PASSWORD:
    migrations_url = settings.migrations_database_url
else:
    migrations_url = settings.database_url

# ConfigParser treats "%" as interpolation markers.
config.set_main_option("sqlalchemy.url", migrations_url.replace("%", "%%"))

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL to the script output instead of running against a database."""
    context.configure(
        url=migrations_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(
        migrations_url,
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection, target_metadata=target_metadata
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
