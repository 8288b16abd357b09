"""Alembic environment: migrates the database the loadvoice app is configured for."""
from logging.config import fileConfig
import pathlib
import sys

from alembic import context
from sqlalchemy import engine_from_config, pool

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

if getattr(context.config, "config_file_name", None):
    fileConfig(context.config.config_file_name)

from wsgi import app
from loadvoice.extensions import db

with app.app_context():
    import loadvoice.models  # noqa: F401
    # the engine URL already has relative sqlite paths resolved into instance/
    url = db.engine.url.render_as_string(hide_password=False)
    target_metadata = db.metadata


def run_migrations_offline():
    context.configure(url=url, target_metadata=target_metadata, literal_binds=True,
                      compare_type=True, render_as_batch=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config({"sqlalchemy.url": url}, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata,
                          compare_type=True, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
