import sqlite3
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from consent_portal.config import settings


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_path: Path | None = None):
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


engine = get_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """Factory for work that outlives the request session (post-response event handlers)."""
    return SessionLocal


SCHEMA_SQL = """\
-- ============================================================
-- CONSENT DOCUMENTS
-- ============================================================
CREATE TABLE IF NOT EXISTS consent_documents (
    id          TEXT PRIMARY KEY,
    file_name   TEXT NOT NULL,
    file_path   TEXT NOT NULL,
    uploaded_by TEXT NOT NULL,
    version     INTEGER NOT NULL DEFAULT 1,
    is_active   INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0, 1)),
    created_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    updated_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_consent_documents_uploaded_by ON consent_documents(uploaded_by);
CREATE INDEX IF NOT EXISTS idx_consent_documents_active ON consent_documents(is_active, created_at DESC);

-- ============================================================
-- CONSENT RECORDS
-- ============================================================
CREATE TABLE IF NOT EXISTS consent_records (
    id             TEXT PRIMARY KEY,
    document_id    TEXT NOT NULL REFERENCES consent_documents(id) ON DELETE CASCADE,
    recipient_type TEXT NOT NULL CHECK(recipient_type IN ('client','jobseeker')),
    recipient_id   TEXT NOT NULL,
    consent_token  TEXT NOT NULL,
    status         TEXT NOT NULL DEFAULT 'pending'
                   CHECK(status IN ('pending','completed')),
    sent_at        TEXT,
    completed_at   TEXT,
    consented_name TEXT,
    ip_address     TEXT,
    created_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    updated_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    UNIQUE (document_id, recipient_type, recipient_id),
    CHECK (
        (status = 'pending' AND completed_at IS NULL
                            AND consented_name IS NULL
                            AND ip_address IS NULL)
        OR
        (status = 'completed' AND completed_at IS NOT NULL
                              AND consented_name IS NOT NULL
                              AND ip_address IS NOT NULL)
    )
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_consent_records_token ON consent_records(consent_token);
CREATE INDEX IF NOT EXISTS idx_consent_records_document ON consent_records(document_id, status);
CREATE INDEX IF NOT EXISTS idx_consent_records_recipient ON consent_records(recipient_id, recipient_type);
CREATE INDEX IF NOT EXISTS idx_consent_records_sent_at ON consent_records(sent_at DESC);

-- ============================================================
-- RECIPIENTS (owned by the client/jobseeker services, read-only here)
-- ============================================================
CREATE TABLE IF NOT EXISTS clients (
    id             TEXT PRIMARY KEY,
    company_name   TEXT NOT NULL,
    email_address1 TEXT
);

CREATE TABLE IF NOT EXISTS jobseeker_profiles (
    id         TEXT PRIMARY KEY,
    first_name TEXT NOT NULL,
    last_name  TEXT NOT NULL,
    email      TEXT
);
"""


MIGRATIONS = [
    # v0.2: partial index for the pending-records dashboard
    "CREATE INDEX IF NOT EXISTS idx_consent_records_pending ON consent_records(sent_at DESC) WHERE status = 'pending'",
]


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    for migration in MIGRATIONS:
        try:
            conn.execute(migration)
            conn.commit()
        except sqlite3.OperationalError:
            pass  # already applied
    conn.close()
