"""
Deployment-time schema provisioning.

Run once per deploy with ``python -m chat_store.init_db``. The repositories
assume the tables exist and never create them on the request path.
"""
import logging

from dotenv import load_dotenv
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

load_dotenv()

from chat_store.db.session import engine, Base  # noqa: E402
from chat_store.utils.logger import setup_logging  # noqa: E402

# Import all models before create_all
from chat_store.models import conversation, message, participant, message_read  # noqa: E402,F401

logger = logging.getLogger(__name__)


def create_missing_tables(bind: Engine = engine) -> None:
    logger.info("Creating missing tables...")
    Base.metadata.create_all(bind=bind)
    logger.info("Tables created (if missing).")


def add_missing_columns(bind: Engine = engine) -> list:
    """Add columns present on the models but missing from existing tables. Returns the added ``table.column`` names."""
    inspector = inspect(bind)
    existing_tables = inspector.get_table_names()
    added = []
    for table_name, model_table in Base.metadata.tables.items():
        if table_name not in existing_tables:
            logger.warning("Table %s not found in DB, creating it...", table_name)
            model_table.create(bind=bind, checkfirst=True)
            continue
        existing_cols = [col["name"] for col in inspector.get_columns(table_name)]
        for col_name, col in model_table.columns.items():
            if col_name in existing_cols:
                continue
            sql = f'ALTER TABLE "{table_name}" ADD COLUMN "{col_name}" {col.type.compile(bind.dialect)}'
            logger.info("Adding column %s.%s", table_name, col_name)
            try:
                with bind.begin() as conn:
                    conn.execute(text(sql))
            except SQLAlchemyError:
                logger.exception("Error adding column %s.%s", table_name, col_name)
                raise
            added.append(f"{table_name}.{col_name}")
    return added


def sync_schema(bind: Engine = engine) -> None:
    create_missing_tables(bind)
    add_missing_columns(bind)


if __name__ == "__main__":
    setup_logging()
    logger.info("Syncing database...")
    sync_schema()
    logger.info("Database sync complete.")
