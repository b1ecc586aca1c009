from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from casebuilder.config import settings
from casebuilder.models import Case, utc_now_iso

logger = logging.getLogger("casebuilder.store")


class StoreError(RuntimeError):
    pass


def _database_path() -> Path:
    prefix = "sqlite:///"
    if not settings.database_url.startswith(prefix):
        raise StoreError("Only sqlite:/// DATABASE_URL is supported.")
    return Path(settings.database_url[len(prefix) :])


def init_db() -> None:
    db_path = _database_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with sqlite3.connect(db_path) as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS case_records (
                storage_key TEXT PRIMARY KEY,
                case_id TEXT NOT NULL,
                payload_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )


@contextmanager
def get_conn() -> Iterator[sqlite3.Connection]:
    try:
        conn = sqlite3.connect(_database_path())
    except sqlite3.Error as exc:
        raise StoreError(f"Could not open case store: {exc}") from exc
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def ping() -> bool:
    try:
        with get_conn() as conn:
            conn.execute("SELECT 1 FROM case_records LIMIT 1").fetchall()
    except (sqlite3.Error, StoreError):
        return False
    return True


def load_case(storage_key: str | None = None) -> Case | None:
    """Return the stored case, or ``None`` when absent or unreadable.

    A record that no longer parses is reported once and then treated exactly
    like a missing one; it is left in place until the next save overwrites it.
    """
    key = storage_key or settings.case_storage_key
    with get_conn() as conn:
        row = conn.execute(
            "SELECT payload_json FROM case_records WHERE storage_key = ?",
            (key,),
        ).fetchone()
    if row is None:
        return None
    try:
        return Case.model_validate(json.loads(row["payload_json"]))
    except (json.JSONDecodeError, ValidationError, TypeError) as exc:
        logger.warning(
            "case_record_unreadable",
            extra={"event": "case_record_unreadable", "storage_key": key, "error": str(exc)},
        )
        return None


def save_case(case: Case, storage_key: str | None = None) -> None:
    key = storage_key or settings.case_storage_key
    record = {
        "storage_key": key,
        "case_id": case.id,
        "payload_json": case.model_dump_json(),
        "updated_at": utc_now_iso(),
    }
    try:
        with get_conn() as conn:
            conn.execute(
                """
                INSERT INTO case_records (storage_key, case_id, payload_json, updated_at)
                VALUES (:storage_key, :case_id, :payload_json, :updated_at)
                ON CONFLICT(storage_key) DO UPDATE SET
                    case_id = excluded.case_id,
                    payload_json = excluded.payload_json,
                    updated_at = excluded.updated_at
                """,
                record,
            )
    except sqlite3.Error as exc:
        raise StoreError(f"Failed to save case '{case.id}': {exc}") from exc
    logger.debug("case_saved", extra={"event": "case_saved", "storage_key": key, "case_id": case.id})


def delete_case(storage_key: str | None = None) -> bool:
    key = storage_key or settings.case_storage_key
    try:
        with get_conn() as conn:
            cursor = conn.execute("DELETE FROM case_records WHERE storage_key = ?", (key,))
    except sqlite3.Error as exc:
        raise StoreError(f"Failed to delete case record: {exc}") from exc
    removed = bool(cursor.rowcount)
    logger.info("case_deleted", extra={"event": "case_deleted", "storage_key": key, "removed": removed})
    return removed


def describe_record(storage_key: str | None = None) -> dict[str, str] | None:
    """Case id and save time of the stored record, without parsing the payload."""
    key = storage_key or settings.case_storage_key
    with get_conn() as conn:
        row = conn.execute(
            "SELECT case_id, updated_at FROM case_records WHERE storage_key = ?",
            (key,),
        ).fetchone()
    if row is None:
        return None
    return {"case_id": row["case_id"], "updated_at": row["updated_at"]}
