from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from transportapp.core.config import settings
from transportapp.db.session import Base
import transportapp.models  # noqa: F401  (registers every table on Base.metadata)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# start_api.py passes the URL explicitly; plain `alembic upgrade` reads the app settings
url = config.get_main_option("sqlalchemy.url") or settings.DATABASE_URL
target_metadata = Base.metadata


def _configure(**kw) -> None:
    is_sqlite = url.startswith("sqlite")
    # SQLite cannot ALTER most constraints in place
    context.configure(target_metadata=target_metadata, compare_type=True, render_as_batch=is_sqlite, **kw)


if context.is_offline_mode():
    _configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()
else:
    engine = create_engine(url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()
