"""Report store: schema, insert, and query helpers for generated AI reports.

Supports two modes:
- Remote (Turso): when TURSO_DATABASE_URL is set, connects via libsql with embedded replica.
- Local (dev): when TURSO_DATABASE_URL is empty, uses a local SQLite file via libsql.

Errors are not caught here; callers decide how a failed write is reported.
"""

import json
from datetime import datetime, timezone

import libsql_experimental as libsql

import config
from models import ReportRecord

DB_PATH = config.REPORTS_DB_PATH


def get_conn():
    if config.TURSO_DATABASE_URL:
        conn = libsql.connect(
            str(DB_PATH),
            sync_url=config.TURSO_DATABASE_URL,
            auth_token=config.TURSO_AUTH_TOKEN,
        )
        conn.sync()
    else:
        conn = libsql.connect(str(DB_PATH))
    return conn


def _rows_to_dicts(cursor) -> list[dict]:
    """Convert cursor results to list of dicts using cursor.description."""
    if cursor.description is None:
        return []
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def _commit(conn) -> None:
    conn.commit()
    if config.TURSO_DATABASE_URL:
        conn.sync()


def init_db() -> None:
    conn = get_conn()
    conn.execute("""
        CREATE TABLE IF NOT EXISTS ai_reports (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            place_name  TEXT,
            lat         REAL NOT NULL,
            lon         REAL NOT NULL,
            category    TEXT,
            report      TEXT NOT NULL,
            created_at  TEXT NOT NULL
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_ai_reports_created_at ON ai_reports (created_at)")
    _commit(conn)
    conn.close()


def insert_report(record: ReportRecord) -> str:
    """Store one report and return its created_at timestamp."""
    created_at = datetime.now(timezone.utc).isoformat()
    conn = get_conn()
    conn.execute(
        """INSERT INTO ai_reports (place_name, lat, lon, category, report, created_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (
            record.place_name,
            record.lat,
            record.lon,
            record.category,
            json.dumps(record.report, ensure_ascii=False),
            created_at,
        ),
    )
    _commit(conn)
    conn.close()
    return created_at


def get_recent_reports(limit: int = 20) -> list[dict]:
    """Newest first; `report` is decoded back into a dict."""
    conn = get_conn()
    cursor = conn.execute(
        """SELECT id, place_name, lat, lon, category, report, created_at
           FROM ai_reports ORDER BY created_at DESC, id DESC LIMIT ?""",
        (limit,),
    )
    rows = _rows_to_dicts(cursor)
    conn.close()
    for d in rows:
        d["report"] = json.loads(d["report"]) if d["report"] else {}
    return rows
