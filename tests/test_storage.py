# tests/test_storage.py
from datetime import datetime

import pytest

from conftest import shift, txn
from matching.aggregate import aggregate
from storage import SCHEMA_VERSION, SQLiteStore
from storage.migrations import get_schema_version, get_table_columns

PERIOD_A = "Oct 13, 2025 - Oct 20, 2025"
PERIOD_B = "Oct 20, 2025 - Oct 27, 2025"


@pytest.fixture
def store():
    s = SQLiteStore(":memory:")
    s.ensure_schema()
    yield s
    s.close()


class TestSchema:
    def test_fresh_init(self):
        with SQLiteStore(":memory:") as s:
            assert s.ensure_schema()["status"] == "initialized"
            assert s.ensure_schema()["status"] == "current"
            assert get_schema_version(s.conn) == SCHEMA_VERSION
            assert "fingerprint" in get_table_columns(s.conn, "transactions")
            assert "tips" in get_table_columns(s.conn, "shifts")

    def test_file_db_created(self, tmp_path):
        path = tmp_path / "nested" / "store.sqlite"
        with SQLiteStore(str(path)) as s:
            s.ensure_schema()
        assert path.exists()

    def test_integrity_flags_dangling_shift(self, store):
        t = txn(datetime(2025, 10, 14, 19))
        t.shift_id = "gone"
        store.insert_transaction(t)
        report = store.check_integrity()
        assert report["status"] == "warning"
        assert report["tables"]["transactions"]["rows"] == 1
        assert any("missing shifts" in issue for issue in report["issues"])


class TestTransactions:
    def test_round_trip(self, store):
        t = txn(
            datetime(2025, 10, 14, 19, 49),
            "UberX",
            21.55,
            event_date=datetime(2025, 10, 14, 19, 20),
            tolls=2.71,
        )
        t.source_row = 7
        store.insert_transaction(t)
        (back,) = store.fetch_transactions()
        assert back.id == t.id
        assert back.transaction_date == t.transaction_date
        assert back.event_date == t.event_date
        assert back.amount == 21.55
        assert back.tolls_reimbursed == 2.71
        assert back.source_row == 7
        assert back.shift_id is None
        assert not back.needs_manual_verification

    def test_unresolved_amount_stored_as_null(self, store):
        t = txn(datetime(2025, 10, 14, 19), amount=None)
        t.needs_manual_verification = True
        store.insert_transaction(t)
        (back,) = store.fetch_transactions()
        assert back.amount is None
        assert back.needs_manual_verification

    def test_save_and_replace_period(self, store):
        first = [txn(datetime(2025, 10, 14, 19)), txn(datetime(2025, 10, 15, 9), "Tip", 5.0)]
        assert store.save_statement_period(PERIOD_A, first) == (2, 0)
        assert store.has_statement_period(PERIOD_A)
        assert not store.has_statement_period(PERIOD_B)

        again = [txn(datetime(2025, 10, 14, 19)), txn(datetime(2025, 10, 15, 9), "Tip", 5.0)]
        assert store.save_statement_period(PERIOD_A, again, replace=True) == (2, 0)
        assert {t.id for t in store.fetch_by_period(PERIOD_A)} == {t.id for t in again}

    def test_overlapping_period_skips_duplicates(self, store):
        store.save_statement_period(PERIOD_A, [txn(datetime(2025, 10, 19, 23), "Tip", 4.0)])
        overlap = [
            txn(datetime(2025, 10, 19, 23), "Tip", 4.0, period_label=PERIOD_B),
            txn(datetime(2025, 10, 21, 9), period_label=PERIOD_B),
        ]
        assert store.save_statement_period(PERIOD_B, overlap) == (1, 1)
        assert len(store.fetch_transactions()) == 2

    def test_periods_summary(self, store):
        store.save_statement_period(PERIOD_A, [txn(datetime(2025, 10, 14, 19))])
        (row,) = store.statement_periods()
        assert row["statement_period"] == PERIOD_A
        assert row["transactions"] == 1
        assert row["unassigned"] == 1


class TestShifts:
    def test_upsert_and_list(self, store):
        late = shift("late", datetime(2025, 10, 15, 18), datetime(2025, 10, 15, 22))
        early = shift("early", datetime(2025, 10, 14, 18))
        store.upsert_shift(late)
        store.upsert_shift(early)
        assert [s.id for s in store.list_shifts()] == ["early", "late"]
        assert store.get_shift("early").end_date is None
        assert store.get_shift("early").created_at is not None

        early.end_date = datetime(2025, 10, 14, 23)
        store.upsert_shift(early)
        assert store.get_shift("early").end_date == datetime(2025, 10, 14, 23)
        assert store.get_shift("nope") is None

    def test_apply_assignments_counts_changes(self, store):
        store.upsert_shift(shift("a", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22)))
        t = txn(datetime(2025, 10, 14, 19))
        store.insert_transaction(t)
        assert store.apply_assignments({t.id: "a"}) == 1
        assert store.apply_assignments({t.id: "a"}) == 0
        assert [x.id for x in store.fetch_by_shift("a")] == [t.id]

    def test_delete_shift_orphans_transactions(self, store):
        store.upsert_shift(shift("a", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22)))
        t = txn(datetime(2025, 10, 14, 19))
        t.shift_id = "a"
        store.insert_transaction(t)
        assert store.delete_shift("a")
        assert not store.delete_shift("a")
        assert [x.id for x in store.fetch_orphans()] == [t.id]
        assert len(store.fetch_transactions()) == 1

    def test_orphans_inside_shift_window(self, store):
        inside = txn(datetime(2025, 10, 14, 16))
        outside = txn(datetime(2025, 10, 15, 9))
        by_event = txn(datetime(2025, 10, 16, 9), "Tip", 2.0, event_date=datetime(2025, 10, 14, 20))
        for t in (inside, outside, by_event):
            store.insert_transaction(t)
        s = shift("a", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22))
        found = store.orphan_transactions_for_shift(s)
        assert [t.id for t in found] == [inside.id, by_event.id]
        assert store.orphan_transactions_for_shift(shift("live", datetime(2025, 10, 14, 18))) == []

    def test_write_shift_totals(self, store):
        store.upsert_shift(shift("a", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22)))
        totals = aggregate(
            [txn(datetime(2025, 10, 14, 19), amount=12.5, tolls=1.0), txn(datetime(2025, 10, 14, 20), "Tip", 3.0)]
        )
        store.write_shift_totals("a", totals)
        assert store.shift_totals("a") == {
            "net_fare": 12.5,
            "tips": 3.0,
            "promotions": 0.0,
            "tolls_reimbursed": 1.0,
        }
        assert store.shift_totals("nope") is None


class TestExclusive:
    def test_commits_as_one_unit(self, tmp_path):
        path = str(tmp_path / "store.sqlite")
        with SQLiteStore(path) as s:
            s.ensure_schema()
            with s.exclusive():
                s.insert_transaction(txn(datetime(2025, 10, 14, 19)))
                s.insert_transaction(txn(datetime(2025, 10, 14, 20)))
        with SQLiteStore(path) as s:
            assert len(s.fetch_transactions()) == 2

    def test_rolls_back_on_error(self, store):
        store.insert_transaction(txn(datetime(2025, 10, 14, 18)))
        with pytest.raises(RuntimeError):
            with store.exclusive():
                store.insert_transaction(txn(datetime(2025, 10, 14, 19)))
                store.upsert_shift(shift("a", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22)))
                raise RuntimeError("boom")
        assert len(store.fetch_transactions()) == 1
        assert store.list_shifts() == []
