"""Tests for QueueLedger: admission, positions and the entry state machine."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from waitline.core.clock import as_utc
from waitline.core.errors import (
    CapacityExceeded,
    ConcurrencyConflict,
    InvalidRequest,
    InvalidTransition,
    NotFound,
    TableUnavailable,
)
from waitline.models.queue import (
    ActivityRecord,
    Notification,
    QueueStatus,
    Reservation,
    TableStatus,
    WaitTimeSample,
)
from waitline.services.queue_ledger import minutes_until


def positions(ledger):
    return [(e.customer_id, e.position) for e in ledger.active_queue()]


def fill_queue(ledger, n, party_size=2):
    return [ledger.join(f"cust-{i}", party_size) for i in range(1, n + 1)]


class TestJoin:

    def test_consecutive_joins_get_gap_free_positions(self, ledger):
        entries = fill_queue(ledger, 5)
        assert [e.position for e in entries] == [1, 2, 3, 4, 5]
        assert all(e.status == QueueStatus.WAITING.value for e in entries)

    def test_join_quotes_heuristic_on_cold_start(self, ledger):
        entries = fill_queue(ledger, 3)
        assert [e.estimated_wait_minutes for e in entries] == [15, 30, 45]

    def test_tokens_are_unique(self, ledger):
        entries = fill_queue(ledger, 8)
        assert len({e.admission_token for e in entries}) == 8

    def test_ninth_join_rejected_with_quote(self, ledger):
        fill_queue(ledger, 8)
        with pytest.raises(CapacityExceeded) as exc_info:
            ledger.join("late", 2)
        assert exc_info.value.estimated_wait_minutes == 135
        assert exc_info.value.active_count == 8
        assert ledger.active_count() == 8
        assert "late" not in [e.customer_id for e in ledger.active_queue()]

    def test_room_frees_up_after_cancel(self, ledger):
        entries = fill_queue(ledger, 8)
        ledger.cancel(entries[0].id, "cust-1")
        entry = ledger.join("late", 2)
        assert entry.position == 8

    def test_terminal_entries_do_not_count(self, ledger, make_table):
        entries = fill_queue(ledger, 8)
        table = make_table("T2", 2)
        ledger.seat(entries[0].id, table.id, "staff-1")
        assert ledger.join("next", 2).position == 8

    def test_rejects_empty_party(self, ledger):
        with pytest.raises(InvalidRequest):
            ledger.join("cust-1", 0)

    def test_records_sample_and_activity(self, ledger, db_session, clock):
        entry = ledger.join("cust-1", 4)
        sample = db_session.execute(select(WaitTimeSample)).scalar_one()
        assert sample.queue_entry_id == entry.id
        assert sample.predicted_wait_minutes == entry.estimated_wait_minutes
        assert sample.queue_length == 1
        assert sample.actual_wait_minutes is None
        assert sample.hour_of_day == 12
        # 2024-01-02 is a Tuesday; Sunday is 0
        assert sample.day_of_week == 2

        record = db_session.execute(select(ActivityRecord)).scalar_one()
        assert record.action == "join_queue"
        assert record.actor_id == "cust-1"
        assert record.details == {"party_size": 4, "position": 1, "estimated_wait_minutes": 22}


class TestReorder:

    def test_cancel_closes_gap(self, ledger):
        entries = fill_queue(ledger, 4)
        cancelled = ledger.cancel(entries[1].id, "staff-1")
        assert cancelled.status == QueueStatus.CANCELLED.value
        assert cancelled.position is None
        assert positions(ledger) == [("cust-1", 1), ("cust-3", 2), ("cust-4", 3)]

    def test_seat_closes_gap(self, ledger, make_table):
        entries = fill_queue(ledger, 3)
        table = make_table("T2", 2)
        outcome = ledger.seat(entries[0].id, table.id, "staff-1")
        assert outcome.entry.position is None
        assert positions(ledger) == [("cust-2", 1), ("cust-3", 2)]

    def test_reorder_is_idempotent(self, ledger):
        fill_queue(ledger, 3)
        assert ledger.reorder() == 0
        assert positions(ledger) == [("cust-1", 1), ("cust-2", 2), ("cust-3", 3)]

    def test_reorder_repairs_drift(self, ledger, db_session):
        entries = fill_queue(ledger, 3)
        # Simulate positions left behind by an interrupted writer
        entries[0].position = 10
        entries[1].position = 20
        entries[2].position = 30
        db_session.commit()
        assert ledger.reorder() == 3
        assert positions(ledger) == [("cust-1", 1), ("cust-2", 2), ("cust-3", 3)]

    def test_notified_entries_keep_their_place(self, ledger):
        entries = fill_queue(ledger, 3)
        ledger.notify(entries[2].id, "staff-1")
        ledger.cancel(entries[0].id, "cust-1")
        assert positions(ledger) == [("cust-2", 1), ("cust-3", 2)]


class TestNotify:

    def test_notify_sets_confirmation_deadline(self, ledger, clock, db_session):
        entry = ledger.join("cust-1", 2)
        notified = ledger.notify(entry.id, "staff-1")
        assert notified.status == QueueStatus.NOTIFIED.value
        assert as_utc(notified.notified_at) == clock.now()
        assert as_utc(notified.confirm_by) == clock.now() + timedelta(minutes=10)

        notification = db_session.execute(select(Notification)).scalar_one()
        assert notification.recipient == "cust-1"
        assert notification.kind == "table_ready"
        assert notification.subject == "Your Table is Ready!"
        assert "10 minutes" in notification.body

    def test_double_notify_rejected(self, ledger):
        entry = ledger.join("cust-1", 2)
        ledger.notify(entry.id, "staff-1")
        with pytest.raises(InvalidTransition) as exc_info:
            ledger.notify(entry.id, "staff-1")
        assert exc_info.value.current == "notified"

    def test_notify_unknown_entry(self, ledger):
        with pytest.raises(NotFound):
            ledger.notify(404, "staff-1")


class TestSeat:

    def test_double_seat_rejected(self, ledger, make_table, db_session):
        entry = ledger.join("cust-1", 2)
        first = make_table("T1", 2)
        second = make_table("T2", 2)
        ledger.seat(entry.id, first.id, "staff-1")
        with pytest.raises(InvalidTransition):
            ledger.seat(entry.id, second.id, "staff-1")

        count = db_session.execute(select(func.count()).select_from(Reservation)).scalar_one()
        assert count == 1
        assert ledger.allocator.get(second.id).status == TableStatus.AVAILABLE.value

    def test_occupied_table_rejected(self, ledger, make_table):
        a, b = fill_queue(ledger, 2)
        table = make_table("T1", 2)
        ledger.seat(a.id, table.id, "staff-1")
        with pytest.raises(TableUnavailable):
            ledger.seat(b.id, table.id, "staff-1")
        assert ledger.get_entry(b.id).status == QueueStatus.WAITING.value
        assert ledger.get_entry(b.id).position == 1

    def test_stale_table_version_rejected(self, ledger, make_table):
        entry = ledger.join("cust-1", 2)
        table = make_table("T1", 2)
        ledger.allocator.update_table(table.id, label="T1-bar")
        with pytest.raises(ConcurrencyConflict):
            ledger.seat(entry.id, table.id, "staff-1", expected_table_version=1)
        assert ledger.get_entry(entry.id).status == QueueStatus.WAITING.value

    def test_waiting_party_can_be_seated_directly(self, ledger, make_table):
        entry = ledger.join("cust-1", 2)
        table = make_table("T1", 2)
        outcome = ledger.seat(entry.id, table.id, "staff-1")
        assert outcome.entry.status == QueueStatus.SEATED.value

    def test_cannot_seat_cancelled_entry(self, ledger, make_table):
        entry = ledger.join("cust-1", 2)
        table = make_table("T1", 2)
        ledger.cancel(entry.id, "cust-1")
        with pytest.raises(InvalidTransition):
            ledger.seat(entry.id, table.id, "staff-1")


class TestCancelAndNoShow:

    def test_cancel_twice_rejected(self, ledger):
        entry = ledger.join("cust-1", 2)
        ledger.cancel(entry.id, "cust-1")
        with pytest.raises(InvalidTransition):
            ledger.cancel(entry.id, "cust-1")

    def test_staff_cancel_notifies_customer(self, ledger, db_session):
        entry = ledger.join("cust-1", 2)
        ledger.cancel(entry.id, "staff-1")
        notification = db_session.execute(select(Notification)).scalar_one()
        assert notification.kind == "cancelled"

    def test_customer_cancel_is_silent(self, ledger, db_session):
        entry = ledger.join("cust-1", 2)
        ledger.cancel(entry.id, "cust-1")
        assert db_session.execute(select(Notification)).first() is None

    def test_no_show_requires_notified(self, ledger):
        entry = ledger.join("cust-1", 2)
        with pytest.raises(InvalidTransition):
            ledger.mark_no_show(entry.id, "staff-1")

    def test_no_show_releases_position(self, ledger, clock, db_session):
        a, b = fill_queue(ledger, 2)
        ledger.notify(a.id, "staff-1")
        clock.advance(minutes=12)
        entry = ledger.mark_no_show(a.id, "staff-1")
        assert entry.status == QueueStatus.NO_SHOW.value
        assert entry.position is None
        assert positions(ledger) == [("cust-2", 1)]

        record = db_session.execute(
            select(ActivityRecord).where(ActivityRecord.action == "mark_no_show")
        ).scalar_one()
        assert record.details == {"minutes_since_notified": 12}


class TestValidateToken:

    def test_only_notified_entries_are_honoured(self, ledger, make_table):
        waiting, notified, seated, cancelled = fill_queue(ledger, 4)
        table = make_table("T1", 2)
        ledger.notify(notified.id, "staff-1")
        ledger.seat(seated.id, table.id, "staff-1")
        ledger.cancel(cancelled.id, "cust-4")

        assert ledger.validate_token(waiting.admission_token) is None
        assert ledger.validate_token(seated.admission_token) is None
        assert ledger.validate_token(cancelled.admission_token) is None
        assert ledger.validate_token(notified.admission_token).id == notified.id

    def test_token_not_honoured_after_seating(self, ledger, make_table):
        entry = ledger.join("cust-1", 2)
        table = make_table("T1", 2)
        ledger.notify(entry.id, "staff-1")
        ledger.seat(entry.id, table.id, "staff-1")
        assert ledger.validate_token(entry.admission_token) is None

    def test_unknown_token(self, ledger):
        assert ledger.validate_token("no-such-token") is None


class TestEndToEnd:

    def test_join_notify_seat_complete(self, ledger, make_table, clock, db_session):
        table = make_table("T4", 4)
        entry = ledger.join("cust-1", 4)

        clock.advance(minutes=18)
        ledger.notify(entry.id, "staff-1")
        clock.advance(minutes=4, seconds=30)
        outcome = ledger.seat(entry.id, table.id, "staff-1")

        assert outcome.actual_wait_minutes == 22
        assert outcome.table.status == TableStatus.OCCUPIED.value
        assert outcome.reservation.staff_id == "staff-1"
        assert outcome.reservation.party_size == 4

        sample = db_session.execute(
            select(WaitTimeSample).where(WaitTimeSample.queue_entry_id == entry.id)
        ).scalar_one()
        assert sample.actual_wait_minutes == 22

        clock.advance(minutes=55)
        reservation = ledger.complete_reservation(outcome.reservation.id, "staff-1")
        assert reservation.completed_at is not None
        assert reservation.duration_minutes == 55
        assert ledger.allocator.get(table.id).status == TableStatus.AVAILABLE.value

        actions = [
            r.action for r in db_session.execute(
                select(ActivityRecord).order_by(ActivityRecord.id)
            ).scalars()
        ]
        assert actions == ["join_queue", "notify_customer", "seat_customer", "complete_reservation"]

    def test_complete_twice_rejected(self, ledger, make_table):
        table = make_table("T2", 2)
        entry = ledger.join("cust-1", 2)
        outcome = ledger.seat(entry.id, table.id, "staff-1")
        ledger.complete_reservation(outcome.reservation.id, "staff-1")
        with pytest.raises(InvalidTransition):
            ledger.complete_reservation(outcome.reservation.id, "staff-1")

    def test_predictions_learn_from_history(self, ledger, make_table, clock):
        # Ten parties, each seated after exactly 20 minutes at queue length 1
        for i in range(10):
            table = make_table(f"T{i}", 2)
            entry = ledger.join(f"cust-{i}", 2)
            clock.advance(minutes=20)
            ledger.seat(entry.id, table.id, "staff-1")

        clock.set(clock.now().replace(hour=10))
        assert ledger.join("next", 2).estimated_wait_minutes == 20


class TestChangeTableStatus:

    def test_override_force_completes_and_cancels(self, ledger, make_table, clock, db_session):
        table = make_table("T2", 2)
        entry = ledger.join("cust-1", 2)
        outcome = ledger.seat(entry.id, table.id, "staff-1")
        clock.advance(minutes=30)

        change = ledger.change_table_status(table.id, TableStatus.RESERVED, "manager-1")

        assert change.old_status == "occupied"
        assert change.forced_reservation.id == outcome.reservation.id
        assert change.cancelled_entry.id == entry.id
        assert ledger.get_entry(entry.id).status == QueueStatus.CANCELLED.value
        reservation = ledger.get_reservation(outcome.reservation.id)
        assert reservation.duration_minutes == 30
        assert ledger.allocator.get(table.id).status == TableStatus.RESERVED.value

        forced = db_session.execute(
            select(ActivityRecord).where(ActivityRecord.action == "force_complete_reservation")
        ).scalar_one()
        assert forced.actor_id == "manager-1"
        assert forced.details["cancelled_entry_id"] == entry.id

    def test_plain_status_change(self, ledger, make_table):
        table = make_table("T2", 2)
        change = ledger.change_table_status(table.id, "reserved", "manager-1")
        assert change.forced_reservation is None
        assert ledger.allocator.get(table.id).status == TableStatus.RESERVED.value

    def test_unknown_status(self, ledger, make_table):
        table = make_table("T2", 2)
        with pytest.raises(InvalidRequest):
            ledger.change_table_status(table.id, "broken", "manager-1")


class TestMinutesUntil:

    def test_counts_down_and_goes_negative(self, clock):
        deadline = clock.now() + timedelta(minutes=10)
        assert minutes_until(deadline, clock.now()) == 10
        assert minutes_until(deadline, clock.now() + timedelta(minutes=11)) == -1
        assert minutes_until(None, clock.now()) is None
