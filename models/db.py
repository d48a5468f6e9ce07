import sqlite3
from contextlib import contextmanager

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()

# execution option marking a transaction that is going to write
WRITE_OPTIONS = {"sqlite_begin": "IMMEDIATE"}


# pysqlite defers BEGIN until the first write, so two transactions can both
# read "no conflict" before either writes. Writers take the lock up front;
# plain reads keep a deferred BEGIN and never queue behind a writer.
@event.listens_for(Engine, "connect")
def _sqlite_manual_transactions(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        dbapi_connection.isolation_level = None


@event.listens_for(Engine, "begin")
def _sqlite_begin(conn):
    if conn.dialect.name == "sqlite":
        mode = conn.get_execution_options().get("sqlite_begin")
        conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")


def begin_write():
    """Make sure the session is inside a write transaction.

    A read transaction left open by an earlier lookup is ended first, since
    SQLite cannot upgrade it without risking a busy deadlock.
    """
    session = db.session()
    if session.in_transaction():
        if session.connection().get_execution_options().get("sqlite_begin") == WRITE_OPTIONS["sqlite_begin"]:
            return
        session.commit()
    session.connection(execution_options=WRITE_OPTIONS)


@contextmanager
def atomic():
    """Commit the session on success, roll it back on any error."""
    try:
        begin_write()
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
