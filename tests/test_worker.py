import asyncio
from datetime import timedelta

import pytest
from conftest import future_at

from vibewell.domain.audit import audit_controller, audit_service
from vibewell.domain.bookings.availability import utcnow
from vibewell.domain.notifications.service import audit_alert_listener
from vibewell.models import Notification, Payment, RecurringBookingGroup, WaitlistEntry
from vibewell.worker import (
    audit_booking_integrity,
    expire_stale_bookings,
    run_scheduled_audits,
    send_due_reminders,
    startup,
)


class TestReminders:
    def test_confirmed_bookings_within_a_day(self, db, make_booking, customer, facial, email_mock):
        now = utcnow()
        soon = make_booking(customer, facial, now + timedelta(hours=5))
        make_booking(customer, facial, now + timedelta(hours=30))
        make_booking(customer, facial, now + timedelta(hours=6), status="PENDING")
        make_booking(customer, facial, now + timedelta(hours=7), status="CANCELLED")

        assert send_due_reminders(db, now) == 1
        assert soon.reminder_sent is True
        assert email_mock.call_args.args[:2] == (customer.email, "BOOKING_REMINDER")
        assert email_mock.call_args.args[4]["service_name"] == "Signature Facial"

    def test_reminder_sent_once(self, db, make_booking, customer, facial):
        now = utcnow()
        make_booking(customer, facial, now + timedelta(hours=5))

        send_due_reminders(db, now)

        assert send_due_reminders(db, now) == 0


class TestPendingExpiry:
    @pytest.fixture
    def now(self):
        return utcnow()

    @pytest.fixture
    def stale(self, now):
        return {"status": "PENDING", "created_at": now - timedelta(hours=2)}

    def test_stale_unpaid_booking_is_cancelled(self, db, make_booking, customer, facial, now, stale, email_mock):
        booking = make_booking(customer, facial, future_at(), **stale)
        fresh = make_booking(customer, facial, future_at(hour=12), status="PENDING", created_at=now)

        assert expire_stale_bookings(db, now) == 1
        assert booking.status == "CANCELLED"
        assert booking.cancellation_reason == "Payment not received in time"
        assert fresh.status == "PENDING"
        assert email_mock.call_args.args[1] == "BOOKING_CANCELLED"

    def test_recurring_and_paid_bookings_are_kept(self, db, make_booking, customer, facial, now, stale):
        group = RecurringBookingGroup(
            customer_id=customer.id,
            service_id=facial.id,
            frequency="WEEKLY",
            start_time=future_at(),
            end_date=future_at(days=30).date(),
        )
        db.add(group)
        db.commit()
        recurring = make_booking(customer, facial, future_at(), recurring_group_id=group.id, **stale)
        paid = make_booking(customer, facial, future_at(hour=12), **stale)
        db.add(Payment(booking_id=paid.id, user_id=customer.id, amount=100.0, status="COMPLETED"))
        db.commit()

        assert expire_stale_bookings(db, now) == 0
        assert recurring.status == "PENDING"
        assert paid.status == "PENDING"

    def test_freed_slot_goes_to_waitlist(self, db, make_provider, make_service, make_booking, make_user, customer, now, stale):
        service = make_service(make_provider(business_hours_start=10, business_hours_end=11), duration_minutes=60)
        make_booking(make_user(), service, future_at(hour=10), **stale)
        entry = WaitlistEntry(customer_id=customer.id, service_id=service.id, preferred_dates=[future_at().date().isoformat()])
        db.add(entry)
        db.commit()

        expire_stale_bookings(db, now)

        db.refresh(entry)
        assert entry.status == "NOTIFIED"
        assert entry.notified_at is not None


class TestAuditJobs:
    @pytest.fixture
    def worker_listener(self):
        audit_service.remove_listener(audit_alert_listener)
        asyncio.run(startup({}))
        yield
        audit_service.add_listener(audit_alert_listener)

    def test_startup_registers_alert_listener(self, worker_listener):
        assert audit_alert_listener in audit_service._listeners

    def test_double_booking_alerts_admins_and_saves_report(
        self, db, worker_listener, make_booking, make_user, admin, customer, facial
    ):
        make_booking(customer, facial, future_at(hour=10))
        make_booking(make_user(), facial, future_at(hour=10, minute=30))

        result = audit_booking_integrity(db)

        assert result["success"] is False
        assert result["issues"] == 1
        assert result["saved_as"] in audit_controller.list_saved_reports()
        alerts = db.query(Notification).filter(Notification.type == "AUDIT_ALERT").all()
        assert [n.user_id for n in alerts] == [admin.id]

    def test_clean_bookings_save_nothing(self, db, make_booking, customer, facial):
        make_booking(customer, facial, future_at(hour=10))

        assert audit_booking_integrity(db) == {"success": True, "issues": 0, "saved_as": None}
        assert audit_controller.list_saved_reports() == []

    def test_scheduled_audits_persist_report_once_due(self):
        first = run_scheduled_audits()

        assert first["ran"] == ["security", "performance", "ux", "compliance", "booking"]
        assert audit_controller.list_saved_reports() == [first["saved_as"]]
        assert run_scheduled_audits() == {"ran": [], "saved_as": None}
