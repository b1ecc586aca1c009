from __future__ import annotations

import logging
from pathlib import Path

import pytest

from casebuilder import db
from casebuilder.case import new_case
from casebuilder.config import settings


@pytest.fixture(autouse=True)
def isolated_store(tmp_path: Path):
    original = settings.database_url
    settings.database_url = f"sqlite:///{tmp_path}/store.db"
    db.init_db()
    yield
    settings.database_url = original


def _write_raw(payload: str) -> None:
    with db.get_conn() as conn:
        conn.execute(
            "INSERT INTO case_records (storage_key, case_id, payload_json, updated_at) VALUES (?, ?, ?, ?)",
            (settings.case_storage_key, "broken", payload, "2026-01-01T00:00:00+00:00"),
        )


def test_missing_record_loads_as_no_case() -> None:
    assert db.load_case() is None


def test_save_then_load_returns_the_same_case() -> None:
    case = new_case("Convoy access negotiation", "Valley")
    db.save_case(case)
    assert db.load_case() == case


def test_save_overwrites_the_single_record() -> None:
    db.save_case(new_case("first"))
    second = new_case("second")
    db.save_case(second)

    assert db.load_case() == second
    with db.get_conn() as conn:
        assert conn.execute("SELECT COUNT(*) FROM case_records").fetchone()[0] == 1


def test_corrupt_json_is_treated_as_missing(caplog: pytest.LogCaptureFixture) -> None:
    _write_raw("{not json")
    with caplog.at_level(logging.WARNING, logger="casebuilder.store"):
        assert db.load_case() is None
    assert any(getattr(record, "event", None) == "case_record_unreadable" for record in caplog.records)


def test_record_with_wrong_shape_is_treated_as_missing() -> None:
    _write_raw('{"title": "no id here", "scenarios": "not a list"}')
    assert db.load_case() is None


def test_delete_removes_the_record() -> None:
    db.save_case(new_case("text"))
    assert db.delete_case() is True
    assert db.load_case() is None
    assert db.delete_case() is False


def test_storage_keys_are_independent() -> None:
    db.save_case(new_case("one"), storage_key="other")
    assert db.load_case() is None
    assert db.load_case("other") is not None


def test_non_sqlite_url_is_rejected() -> None:
    settings.database_url = "postgresql://localhost/cases"
    with pytest.raises(db.StoreError):
        db.init_db()
    assert db.ping() is False


def test_describe_record_does_not_parse_the_payload() -> None:
    assert db.describe_record() is None
    _write_raw("{not json")
    record = db.describe_record()
    assert record == {"case_id": "broken", "updated_at": "2026-01-01T00:00:00+00:00"}
