import sqlite3
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from tenderflow.config import settings


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


SCHEMA_SQL = """\
-- ============================================================
-- USERS
-- ============================================================
CREATE TABLE IF NOT EXISTS users (
    id         TEXT PRIMARY KEY,
    email      TEXT NOT NULL UNIQUE,
    token_hash TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

-- ============================================================
-- JOBS
-- ============================================================
CREATE TABLE IF NOT EXISTS jobs (
    id            TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL REFERENCES users(id),
    file_name     TEXT NOT NULL,
    file_path     TEXT,
    source_type   TEXT NOT NULL CHECK(source_type IN ('pdf','docx','txt')),
    status        TEXT NOT NULL DEFAULT 'queued'
                  CHECK(status IN ('queued','processing','done','failed')),
    error_message TEXT,
    created_at    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    updated_at    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_jobs_user ON jobs(user_id);
CREATE INDEX IF NOT EXISTS idx_jobs_status_created ON jobs(status, created_at);

-- ============================================================
-- JOB EVENTS (append-only)
-- ============================================================
CREATE TABLE IF NOT EXISTS job_events (
    id         TEXT PRIMARY KEY,
    job_id     TEXT NOT NULL REFERENCES jobs(id),
    user_id    TEXT,
    level      TEXT NOT NULL CHECK(level IN ('info','warn','error')),
    message    TEXT NOT NULL,
    meta       TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_job_events_job ON job_events(job_id);

-- ============================================================
-- JOB RESULTS (one per job)
-- ============================================================
CREATE TABLE IF NOT EXISTS job_results (
    job_id            TEXT PRIMARY KEY REFERENCES jobs(id),
    user_id           TEXT,
    extracted_text    TEXT,
    executive_summary TEXT,
    requirements      TEXT,
    risks             TEXT,
    clarifications    TEXT,
    outline           TEXT,
    evidence          TEXT,
    updated_at        TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

-- ============================================================
-- WORK ITEMS (human overlay on findings)
-- ============================================================
CREATE TABLE IF NOT EXISTS job_work_items (
    id          TEXT PRIMARY KEY,
    job_id      TEXT NOT NULL REFERENCES jobs(id),
    user_id     TEXT,
    type        TEXT NOT NULL
                CHECK(type IN ('requirement','risk','clarification','outline')),
    ref_key     TEXT NOT NULL,
    title       TEXT,
    status      TEXT NOT NULL DEFAULT 'todo'
                CHECK(status IN ('todo','doing','blocked','done')),
    owner_label TEXT,
    due_at      TEXT,
    notes       TEXT,
    created_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    updated_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    UNIQUE (job_id, type, ref_key)
);

CREATE INDEX IF NOT EXISTS idx_work_items_job ON job_work_items(job_id);
"""


MIGRATIONS = [
    # v0.2: last failure message on jobs
    "ALTER TABLE jobs ADD COLUMN error_message TEXT",
    # v0.3: evidence candidates stored alongside findings
    "ALTER TABLE job_results ADD COLUMN evidence TEXT",
]


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    # Run migrations idempotently (ALTER TABLE fails if column exists)
    for migration in MIGRATIONS:
        try:
            conn.execute(migration)
            conn.commit()
        except sqlite3.OperationalError:
            pass  # column already exists
    conn.close()
