from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from chat_store.core.config import settings


def build_engine(database_url: str, **overrides) -> Engine:
    """Create an engine for ``database_url`` with the pool and deadline settings applied."""
    db_url_lower = database_url.lower()
    is_postgres = "postgresql" in db_url_lower or "postgres" in db_url_lower
    is_sqlite = db_url_lower.startswith("sqlite")

    connect_args = {}
    options = {
        "pool_pre_ping": True,
        "echo": settings.DB_ECHO,
    }
    if is_postgres:
        # UTF-8 for emoji in message bodies, plus connection and statement deadlines
        connect_args["client_encoding"] = "UTF8"
        connect_args["connect_timeout"] = settings.DB_CONNECT_TIMEOUT
        if settings.DB_STATEMENT_TIMEOUT_MS > 0:
            connect_args["options"] = f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"
    if not is_sqlite:
        options["pool_size"] = settings.DB_POOL_SIZE
        options["max_overflow"] = settings.DB_MAX_OVERFLOW
        options["pool_timeout"] = settings.DB_POOL_TIMEOUT
    options["connect_args"] = connect_args
    options.update(overrides)

    engine = create_engine(database_url, **options)

    if is_sqlite:
        # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base=declarative_base()

def get_db():
    db=SessionLocal()
    try:
        yield db

    finally:
        db.close()
