from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
import logging
import os
from dotenv import load_dotenv
from models.users_models import Base

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./otp.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
# seconds a SQLite writer waits on a locked database before giving up
SQLITE_BUSY_TIMEOUT = float(os.getenv("SQLITE_BUSY_TIMEOUT", "30"))

is_sqlite = DATABASE_URL.startswith("sqlite")


def engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}}
    # drop stale pooled connections before use
    return {"pool_pre_ping": True}


engine = create_engine(DATABASE_URL, echo=SQL_ECHO, **engine_options(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_db_and_tables(bind=engine):
    # challenge models must be registered on Base before create_all
    import models.challenge_models  # noqa: F401
    Base.metadata.create_all(bind=bind)
    logger.info("Database tables ready on %s", bind.url.render_as_string(hide_password=True))


# Enable SQLite foreign key constraints when using SQLite
if is_sqlite:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
