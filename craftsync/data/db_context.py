import os
from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import create_engine

from craftsync.config import DATABASE_NAME


def get_db_path(db_path: Optional[str] = None) -> str:
    """
    Resolves the SQLite file used by the local store.
    An explicit path wins, then CRAFTSYNC_DB_PATH, then the working directory.
    """
    if db_path:
        return str(db_path)
    return os.getenv("CRAFTSYNC_DB_PATH") or DATABASE_NAME


def _apply_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    # --- Tuned for a UI thread reading while the sync worker writes ---
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.execute("PRAGMA temp_store=MEMORY;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def create_db_engine(db_path: Optional[str] = None) -> Engine:
    """Engine shared by the migration manager, the repositories and the metadata store."""
    engine = create_engine(
        f"sqlite:///{get_db_path(db_path)}",
        # The debounce timer runs sync on its own thread
        connect_args={"check_same_thread": False, "timeout": 10.0},
    )
    event.listen(engine, "connect", _apply_pragmas)
    return engine
