# tests/test_matcher.py
from datetime import date, datetime, timedelta

from conftest import shift, txn
from matching.matcher import (
    ShiftMatcher,
    day_start,
    match_transactions,
    operational_day,
    operational_week,
)


def test_operational_day_boundary():
    assert operational_day(datetime(2025, 10, 15, 2, 0)) == date(2025, 10, 14)
    assert operational_day(datetime(2025, 10, 15, 4, 0)) == date(2025, 10, 15)
    assert day_start(date(2025, 10, 15)) == datetime(2025, 10, 15, 4)
    # Sunday 11 PM and Monday 3 AM belong to the same week
    assert operational_week(datetime(2025, 10, 19, 23)) == date(2025, 10, 13)
    assert operational_week(datetime(2025, 10, 20, 3)) == date(2025, 10, 13)
    assert operational_week(datetime(2025, 10, 20, 5)) == date(2025, 10, 20)


class TestWindow:
    def test_widened_by_offset(self):
        s = shift("a", datetime(2025, 10, 14, 12), datetime(2025, 10, 14, 14))
        assert ShiftMatcher().candidate_window(s) == (
            datetime(2025, 10, 14, 8),
            datetime(2025, 10, 14, 18),
        )

    def test_clipped_to_operational_day(self):
        s = shift("a", datetime(2025, 10, 14, 6), datetime(2025, 10, 15, 1))
        lo, hi = ShiftMatcher().candidate_window(s)
        assert lo == datetime(2025, 10, 14, 4)
        assert hi == datetime(2025, 10, 15, 4)

    def test_in_progress_has_no_window(self):
        assert ShiftMatcher().candidate_window(shift("a", datetime(2025, 10, 14, 6))) is None

    def test_custom_offset(self):
        s = shift("a", datetime(2025, 10, 14, 12), datetime(2025, 10, 14, 14))
        lo, hi = ShiftMatcher(offset=timedelta(hours=2)).candidate_window(s)
        assert (lo, hi) == (datetime(2025, 10, 14, 10), datetime(2025, 10, 14, 16))


class TestFindShift:
    def test_two_am_goes_to_previous_evening(self):
        evening = shift("evening", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 23, 30))
        morning = shift("morning", datetime(2025, 10, 15, 5), datetime(2025, 10, 15, 9))
        m = ShiftMatcher()
        assert m.find_shift(datetime(2025, 10, 15, 2), [evening, morning]) is evening
        assert m.find_shift(datetime(2025, 10, 15, 4, 30), [evening, morning]) is morning

    def test_two_am_never_goes_to_later_shift(self):
        morning = shift("morning", datetime(2025, 10, 15, 5), datetime(2025, 10, 15, 9))
        assert ShiftMatcher().find_shift(datetime(2025, 10, 15, 2), [morning]) is None

    def test_smallest_window_wins(self):
        long = shift("long", datetime(2025, 10, 14, 8), datetime(2025, 10, 14, 22))
        short = shift("short", datetime(2025, 10, 14, 12), datetime(2025, 10, 14, 14))
        m = ShiftMatcher()
        assert m.find_shift(datetime(2025, 10, 14, 13), [long, short]).id == "short"
        assert m.find_shift(datetime(2025, 10, 14, 20), [long, short]).id == "long"

    def test_identical_windows_prefer_recently_created(self):
        start, end = datetime(2025, 10, 14, 12), datetime(2025, 10, 14, 14)
        old = shift("old", start, end, created=datetime(2025, 10, 14, 15))
        new = shift("new", start, end, created=datetime(2025, 10, 14, 16))
        unknown = shift("unknown", start, end)
        m = ShiftMatcher()
        ts = datetime(2025, 10, 14, 13)
        assert m.find_shift(ts, [new, old, unknown]).id == "new"
        assert m.find_shift(ts, [unknown, old]).id == "old"

    def test_identical_windows_without_created_prefer_later_position(self):
        start, end = datetime(2025, 10, 14, 12), datetime(2025, 10, 14, 14)
        a, b = shift("a", start, end), shift("b", start, end)
        assert ShiftMatcher().find_shift(datetime(2025, 10, 14, 13), [a, b]).id == "b"

    def test_window_end_is_exclusive(self):
        s = shift("a", datetime(2025, 10, 14, 12), datetime(2025, 10, 14, 14))
        m = ShiftMatcher()
        assert m.find_shift(datetime(2025, 10, 14, 8), [s]) is s
        assert m.find_shift(datetime(2025, 10, 14, 18), [s]) is None


class TestMatch:
    def test_event_date_drives_matching(self):
        s = shift("a", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22))
        t = txn(datetime(2025, 10, 16, 9), "Tip", 5.0, event_date=datetime(2025, 10, 14, 20))
        result = match_transactions([t], [s])
        assert result.shift_for(t.id) == "a"
        assert result.matched == 1

    def test_orphans_and_ignored(self):
        s = shift("a", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22))
        orphan = txn(datetime(2025, 10, 17, 12))
        bank = txn(datetime(2025, 10, 14, 19), "Transferred to bank account", -400.0)
        result = match_transactions([orphan, bank], [s])
        assert result.orphans == [orphan]
        assert result.ignored == [bank]
        assert result.assignments == {orphan.id: None, bank.id: None}
        assert len(result.warnings) == 1
        assert result.warnings[0].transaction_id == orphan.id

    def test_in_progress_shift_is_skipped(self):
        s = shift("live", datetime(2025, 10, 14, 18))
        t = txn(datetime(2025, 10, 14, 19))
        assert match_transactions([t], [s]).orphans == [t]

    def test_match_does_not_modify_then_apply(self):
        s = shift("a", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22))
        t = txn(datetime(2025, 10, 14, 19))
        result = match_transactions([t], [s])
        assert t.shift_id is None
        assert result.apply([t]) == 1
        assert t.shift_id == "a"
        assert result.apply([t]) == 0

    def test_rematch_is_idempotent(self):
        shifts = [
            shift("a", datetime(2025, 10, 14, 18), datetime(2025, 10, 14, 22)),
            shift("b", datetime(2025, 10, 15, 8), datetime(2025, 10, 15, 12)),
        ]
        txns = [txn(datetime(2025, 10, 14, 19)), txn(datetime(2025, 10, 15, 9)), txn(datetime(2025, 10, 18, 9))]
        first = match_transactions(txns, shifts)
        first.apply(txns)
        second = match_transactions(txns, shifts)
        assert second.assignments == first.assignments
        assert second.apply(txns) == 0

    def test_new_shift_recovers_orphan(self):
        t = txn(datetime(2025, 10, 18, 9))
        assert match_transactions([t], []).orphans == [t]
        s = shift("sat", datetime(2025, 10, 18, 8), datetime(2025, 10, 18, 11))
        assert match_transactions([t], [s]).shift_for(t.id) == "sat"

    def test_better_fitting_shift_takes_over(self):
        long = shift("long", datetime(2025, 10, 14, 8), datetime(2025, 10, 14, 22))
        t = txn(datetime(2025, 10, 14, 13))
        match_transactions([t], [long]).apply([t])
        assert t.shift_id == "long"

        short = shift("short", datetime(2025, 10, 14, 12), datetime(2025, 10, 14, 14))
        result = match_transactions([t], [long, short])
        assert result.apply([t]) == 1
        assert t.shift_id == "short"


class TestDelayedTip:
    def test_tip_from_previous_week(self):
        t = txn(datetime(2025, 10, 14, 9), "Tip", 3.0, event_date=datetime(2025, 10, 12, 20))
        s = shift("sun", datetime(2025, 10, 12, 18), datetime(2025, 10, 12, 23))
        result = match_transactions([t], [s])
        assert result.is_delayed_tip(t.id)
        assert result.shift_for(t.id) == "sun"

    def test_tip_in_same_week(self):
        t = txn(datetime(2025, 10, 15, 9), "Tip", 3.0, event_date=datetime(2025, 10, 14, 20))
        assert not ShiftMatcher().is_delayed_tip(t)

    def test_only_tips_are_delayed(self):
        t = txn(datetime(2025, 10, 14, 9), "UberX", 3.0, event_date=datetime(2025, 10, 12, 20))
        assert not ShiftMatcher().is_delayed_tip(t)

    def test_unknown_period_label(self):
        t = txn(
            datetime(2025, 10, 14, 9),
            "Tip",
            3.0,
            event_date=datetime(2025, 10, 1, 20),
            period_label="",
        )
        assert not ShiftMatcher().is_delayed_tip(t)
