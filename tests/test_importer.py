# tests/test_importer.py
from datetime import datetime

import pytest

from conftest import shift
from pipeline.importer import import_statement, rematch
from rst_core.errors import DocumentLoadError
from storage import SQLiteStore

PERIOD = "Oct 13, 2025 - Oct 20, 2025"


@pytest.fixture
def store():
    s = SQLiteStore(":memory:")
    s.ensure_schema()
    yield s
    s.close()


@pytest.fixture
def statement_path(tmp_path, statement_pdf):
    p = tmp_path / "2025-10-13.pdf"
    p.write_bytes(statement_pdf)
    return p


def test_import_matches_and_stores(store, statement_path):
    store.upsert_shift(shift("evening", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22)))
    summary = import_statement(statement_path, store)

    assert summary.ok
    assert summary.status == "imported"
    assert summary.period == PERIOD
    assert summary.parsed == 3
    assert summary.inserted == 3
    assert summary.matched == 2
    assert summary.ignored == 1
    assert summary.orphaned == 0
    assert summary.errors == []

    assigned = store.fetch_by_shift("evening")
    assert sorted(t.event_type for t in assigned) == ["Tip", "UberX"]
    totals = store.shift_totals("evening")
    assert totals["net_fare"] == 21.55
    assert totals["tips"] == 5.0


def test_duplicate_period_writes_nothing(store, statement_path):
    import_statement(statement_path, store)
    before = {t.id for t in store.fetch_transactions()}

    summary = import_statement(statement_path, store)
    assert summary.status == "duplicate_period"
    assert not summary.ok
    assert summary.inserted == 0
    assert {t.id for t in store.fetch_transactions()} == before


def test_replace_period(store, statement_path):
    import_statement(statement_path, store)
    before = {t.id for t in store.fetch_transactions()}

    summary = import_statement(statement_path, store, replace=True)
    assert summary.status == "replaced"
    assert summary.inserted == 3
    after = {t.id for t in store.fetch_transactions()}
    assert len(after) == 3
    assert not (before & after)


def test_import_from_bytes(store, statement_pdf):
    summary = import_statement(statement_pdf, store)
    assert summary.source == "<bytes>"
    assert summary.orphaned == 2


def test_unreadable_document_leaves_store_untouched(store, tmp_path):
    bad = tmp_path / "bad.pdf"
    bad.write_bytes(b"not a pdf")
    with pytest.raises(DocumentLoadError):
        import_statement(bad, store)
    assert store.fetch_transactions() == []


def test_rematch_recovers_orphans(store, statement_pdf):
    import_statement(statement_pdf, store)
    assert len(store.fetch_orphans()) == 3  # includes the ignored transfer

    store.upsert_shift(shift("evening", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22)))
    result = rematch(store)
    assert result.transactions == 3
    assert result.changed == 2
    assert result.matched == 2
    assert result.ignored == 1
    assert store.shift_totals("evening")["tips"] == 5.0

    again = rematch(store)
    assert again.changed == 0


def test_rematch_after_shift_delete(store, statement_pdf):
    store.upsert_shift(shift("evening", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22)))
    import_statement(statement_pdf, store)
    store.delete_shift("evening")
    result = rematch(store)
    assert result.matched == 0
    assert result.orphaned == 2


def test_rematch_moves_to_better_fitting_shift(store, statement_pdf):
    store.upsert_shift(shift("day", datetime(2025, 10, 14, 8), datetime(2025, 10, 14, 22)))
    import_statement(statement_pdf, store)
    assert len(store.fetch_by_shift("day")) == 2

    # window 11:00-19:30 holds the 7:20 PM ride but not the 8:05 PM tip
    store.upsert_shift(shift("short", datetime(2025, 10, 14, 15), datetime(2025, 10, 14, 15, 30)))
    result = rematch(store)
    assert result.changed == 1
    assert [t.event_type for t in store.fetch_by_shift("short")] == ["UberX"]
    assert store.shift_totals("day")["net_fare"] == 0.0
    assert store.shift_totals("short")["net_fare"] == 21.55
