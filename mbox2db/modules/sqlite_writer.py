"""
SQLite Writer Module
Stores EmailRecords in an SQLite database, one row per message
"""

import logging
import sqlite3
from pathlib import Path
from typing import Optional, Union

from .email_record import EmailRecord


SCHEMA = """
CREATE TABLE IF NOT EXISTS emails (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    from_addr TEXT,
    to_addr TEXT,
    cc TEXT,
    bcc TEXT,
    subject TEXT,
    date TEXT,
    date_parsed TEXT,
    message_id TEXT,
    in_reply_to TEXT,
    refs TEXT,
    content_type TEXT,
    body_plain TEXT,
    body_html TEXT
);
CREATE INDEX IF NOT EXISTS idx_from ON emails(from_addr);
CREATE INDEX IF NOT EXISTS idx_date ON emails(date);
CREATE INDEX IF NOT EXISTS idx_date_parsed ON emails(date_parsed);
CREATE INDEX IF NOT EXISTS idx_subject ON emails(subject);
"""

# Bulk-load settings; the database is written once and then only read
PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA cache_size=-64000",
    "PRAGMA temp_store=MEMORY",
)

INSERT_SQL = """
INSERT INTO emails (
    from_addr, to_addr, cc, bcc, subject, date, date_parsed,
    message_id, in_reply_to, refs, content_type, body_plain, body_html
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

# SQLite side files that belong to a database in WAL mode
SIDE_FILE_SUFFIXES = ("-wal", "-shm")


class SQLiteWriter:
    """
    Writes records inside a single transaction.

    Use as a context manager: the transaction is committed when the block
    exits cleanly and rolled back when it raises. sqlite3.Error is never
    swallowed.
    """

    def __init__(self, db_path: Union[str, Path], replace: bool = False):
        """
        Initialize the writer

        Args:
            db_path: Database file to create or append to
            replace: Delete an existing database at db_path first
        """
        self.db_path = Path(db_path)
        self.replace = replace
        self.rows_written = 0
        self.conn: Optional[sqlite3.Connection] = None
        self.logger = logging.getLogger("SQLiteWriter")

    def __enter__(self) -> "SQLiteWriter":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        self.close()

    def open(self):
        """Create the database file, schema and indexes"""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        if self.replace:
            self._remove_existing()

        self.conn = sqlite3.connect(str(self.db_path))
        for pragma in PRAGMAS:
            self.conn.execute(pragma)
        self.conn.executescript(SCHEMA)
        self.logger.info("Opened database %s", self.db_path)

    def write(self, record: EmailRecord):
        """Insert one record; rows keep the order of write() calls"""
        if self.conn is None:
            raise RuntimeError("SQLiteWriter is not open")

        self.conn.execute(INSERT_SQL, record.as_row())
        self.rows_written += 1

    def commit(self):
        if self.conn is not None:
            self.conn.commit()
            self.logger.info("Committed %d rows to %s", self.rows_written, self.db_path)

    def rollback(self):
        if self.conn is not None:
            self.conn.rollback()
            self.logger.warning("Rolled back %d uncommitted rows", self.rows_written)

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def _remove_existing(self):
        for path in [self.db_path] + [
            self.db_path.with_name(self.db_path.name + suffix) for suffix in SIDE_FILE_SUFFIXES
        ]:
            if path.exists():
                self.logger.info("Replacing existing file %s", path)
                path.unlink()
