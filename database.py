from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
import os

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")  # Optional: full connection string

# Clean DATABASE_URL - remove empty strings and whitespace
if DATABASE_URL:
    DATABASE_URL = DATABASE_URL.strip() or None


def _resolve_database_url() -> str:
    """
    Pick the connection string.
    DATABASE_URL wins (Render.com, Heroku, etc.), then a PostgreSQL server described by
    DB_HOST and friends, then a local SQLite file for development.
    """
    if DATABASE_URL:
        return DATABASE_URL

    db_host = os.getenv("DB_HOST")
    if db_host:
        db_user = os.getenv("DB_USER", "postgres")
        db_pass = os.getenv("DB_PASSWORD", "")
        db_name = os.getenv("DB_NAME", "wallet_ledger")
        db_port = os.getenv("DB_PORT", "5432")
        return f"postgresql://{db_user}:{db_pass}@{db_host}:{db_port}/{db_name}"

    return os.getenv("SQLITE_URL", "sqlite:///./wallet_ledger.db")


def _enable_sqlite_savepoints(engine):
    """
    Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINT (Session.begin_nested) works.
    See the SQLAlchemy SQLite dialect notes on serializable isolation and savepoints.
    """
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **kwargs):
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False}, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,   # Recycle connections after 1 hour
    )


engine = build_engine(_resolve_database_url())

# Session and Base
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db(bind=None):
    """Create any missing tables"""
    import models  # noqa: F401  registers the mappers on Base
    Base.metadata.create_all(bind=bind or engine)


# Dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
