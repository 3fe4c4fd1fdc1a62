from datetime import timedelta

from conftest import future_at

from vibewell.domain.bookings.availability import utcnow
from vibewell.models import Booking, Notification, Payment


def book(client, service, start, notes=None):
    return client.post(
        "/bookings",
        json={"service_id": service.id, "start_time": start.isoformat(), "notes": notes},
    )


def add_payment(db, booking, amount, kind="FULL", refundable=True, status="COMPLETED"):
    payment = Payment(
        booking_id=booking.id,
        user_id=booking.customer_id,
        amount=amount,
        kind=kind,
        is_refundable=refundable,
        status=status,
        stripe_payment_intent_id=f"pi_seed_{booking.id}_{kind}",
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


class TestCreateBooking:
    def test_creates_pending_booking_with_dynamic_price(self, client, login, customer, facial):
        login(customer)
        start = future_at(hour=10)

        response = book(client, facial, start, notes="First visit")

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["price"] == 120.0
        assert body["price_adjustments"] == [{"type": "PEAK_HOUR", "amount": 20.0}]
        assert body["end_time"].startswith((start + timedelta(minutes=60)).isoformat())
        assert body["notes"] == "First visit"
        assert body["public_id"]

    def test_notifies_customer_and_provider(self, client, login, db, customer, provider, facial, email_mock):
        login(customer)
        book(client, facial, future_at())

        recipients = {call.args[0] for call in email_mock.call_args_list}
        assert recipients == {customer.email, provider.user.email}
        types = {n.type for n in db.query(Notification).all()}
        assert types == {"BOOKING_CONFIRMATION", "BOOKING_UPDATE"}

    def test_notes_are_sanitized(self, client, login, customer, facial):
        login(customer)
        response = book(client, facial, future_at(), notes="<script>alert(1)</script>Hi")
        assert "<script>" not in response.json()["notes"]

    def test_overlapping_slot_is_rejected(self, client, login, make_user, customer, facial):
        login(customer)
        assert book(client, facial, future_at(hour=10)).status_code == 201

        login(make_user())
        response = book(client, facial, future_at(hour=10, minute=30))

        assert response.status_code == 409

    def test_cancelled_bookings_free_the_slot(self, client, login, make_booking, make_user, customer, facial):
        make_booking(make_user(), facial, future_at(hour=10), status="CANCELLED")
        login(customer)
        assert book(client, facial, future_at(hour=10)).status_code == 201

    def test_back_to_back_bookings_are_allowed(self, client, login, make_user, customer, facial):
        login(customer)
        assert book(client, facial, future_at(hour=10)).status_code == 201
        login(make_user())
        assert book(client, facial, future_at(hour=11)).status_code == 201

    def test_outside_business_hours(self, client, login, customer, facial):
        login(customer)
        assert book(client, facial, future_at(hour=16, minute=30)).status_code == 400
        assert book(client, facial, future_at(hour=7)).status_code == 400

    def test_past_start_is_rejected(self, client, login, customer, facial):
        login(customer)
        response = book(client, facial, future_at(days=-1))
        assert response.status_code == 400
        assert "future" in response.json()["detail"]

    def test_provider_cannot_book_own_service(self, client, login, provider, facial):
        login(provider.user)
        assert book(client, facial, future_at()).status_code == 400

    def test_inactive_service(self, client, login, make_service, provider, customer):
        retired = make_service(provider, is_active=False)
        login(customer)
        assert book(client, retired, future_at()).status_code == 400

    def test_unknown_service(self, client, login, customer):
        login(customer)
        response = client.post("/bookings", json={"service_id": 999, "start_time": future_at().isoformat()})
        assert response.status_code == 404

    def test_requires_authentication(self, client, facial):
        response = client.post("/bookings", json={"service_id": facial.id, "start_time": future_at().isoformat()})
        assert response.status_code in (401, 403)

    def test_timezone_aware_start_is_stored_as_utc(self, client, login, customer, facial):
        login(customer)
        local_start = future_at(hour=12)
        response = client.post(
            "/bookings",
            json={"service_id": facial.id, "start_time": local_start.isoformat() + "+02:00"},
        )
        assert response.status_code == 201
        assert response.json()["start_time"].startswith(local_start.replace(hour=10).isoformat())


class TestAvailabilityAndQuotes:
    def test_slots_skip_existing_bookings(self, client, make_booking, customer, facial):
        day = future_at().date()
        make_booking(customer, facial, future_at(hour=10))

        response = client.get("/bookings/availability", params={"service_id": facial.id, "date": day.isoformat()})

        assert response.status_code == 200
        body = response.json()
        assert body["duration_minutes"] == 60
        times = [s[11:16] for s in body["slots"]]
        assert times[0] == "09:00"
        assert times[-1] == "16:00"
        assert "09:30" not in times
        assert "10:00" not in times
        assert "10:30" not in times
        assert "11:00" in times
        assert len(times) == 12

    def test_provider_interval_is_respected(self, client, make_provider, make_service):
        provider = make_provider(business_hours_start=10, business_hours_end=12, slot_interval_minutes=60)
        service = make_service(provider, duration_minutes=60)

        response = client.get(
            "/bookings/availability", params={"service_id": service.id, "date": future_at().date().isoformat()}
        )

        assert [s[11:16] for s in response.json()["slots"]] == ["10:00", "11:00"]

    def test_past_day_has_no_slots(self, client, facial):
        yesterday = (utcnow() - timedelta(days=1)).date()
        response = client.get("/bookings/availability", params={"service_id": facial.id, "date": yesterday.isoformat()})
        assert response.json()["slots"] == []

    def test_price_quote(self, client, make_booking, make_user, facial):
        for hour in range(9, 14):
            make_booking(make_user(), facial, future_at(hour=hour))

        response = client.post(
            "/bookings/price-quote",
            json={"service_id": facial.id, "start_time": future_at(hour=15).isoformat()},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["base_price"] == 100.0
        assert body["price"] == 150.0
        assert [a["type"] for a in body["adjustments"]] == ["PEAK_HOUR", "HIGH_DEMAND"]


class TestReadBookings:
    def test_only_parties_can_see_a_booking(self, client, login, make_booking, make_user, admin, customer, facial):
        booking = make_booking(customer, facial, future_at())

        login(make_user())
        assert client.get(f"/bookings/{booking.id}").status_code == 404

        for viewer in (customer, facial.provider.user, admin):
            login(viewer)
            assert client.get(f"/bookings/{booking.id}").status_code == 200

    def test_list_as_customer_and_provider(self, client, login, make_booking, customer, facial):
        make_booking(customer, facial, future_at(days=3))
        make_booking(customer, facial, future_at(days=4), status="CANCELLED")

        login(customer)
        assert len(client.get("/bookings").json()) == 2
        assert len(client.get("/bookings", params={"status": "CANCELLED"}).json()) == 1

        login(facial.provider.user)
        assert len(client.get("/bookings", params={"as_provider": True}).json()) == 2

    def test_list_as_provider_requires_profile(self, client, login, customer):
        login(customer)
        assert client.get("/bookings", params={"as_provider": True}).status_code == 403


class TestCancelBooking:
    def test_early_cancellation_refunds_payment(self, client, login, db, make_booking, customer, facial, fake_stripe):
        booking = make_booking(customer, facial, future_at(days=3))
        payment = add_payment(db, booking, 120.0)
        login(customer)

        response = client.post(f"/bookings/{booking.id}/cancel", json={"reason": "Change of plans"})

        assert response.status_code == 200
        body = response.json()
        assert body["refunded"] is True
        assert body["refund_amount"] == 120.0
        assert body["booking"]["status"] == "CANCELLED"
        assert body["booking"]["cancellation_reason"] == "Change of plans"
        assert fake_stripe.refunds[0].amount == 12000
        db.refresh(payment)
        assert payment.status == "REFUNDED"

    def test_failed_refund_keeps_booking_active_and_can_be_retried(
        self, client, login, db, make_booking, customer, facial, fake_stripe
    ):
        booking = make_booking(customer, facial, future_at(days=3))
        payment = add_payment(db, booking, 120.0)
        login(customer)
        fake_stripe.fail_refunds = True

        first = client.post(f"/bookings/{booking.id}/cancel", json={"reason": "Change of plans"})

        assert first.status_code == 502
        db.refresh(booking)
        db.refresh(payment)
        assert booking.status == "CONFIRMED"
        assert booking.cancelled_at is None
        assert payment.status == "COMPLETED"

        fake_stripe.fail_refunds = False
        retry = client.post(f"/bookings/{booking.id}/cancel", json={"reason": "Change of plans"})

        assert retry.status_code == 200
        assert retry.json()["refund_amount"] == 120.0
        db.refresh(payment)
        assert payment.status == "REFUNDED"

    def test_cancelled_booking_with_unrefunded_payment_retries_refund(
        self, client, login, db, make_booking, customer, facial, fake_stripe
    ):
        booking = make_booking(customer, facial, future_at(days=3), status="CANCELLED", cancelled_at=utcnow())
        payment = add_payment(db, booking, 80.0)
        login(customer)

        response = client.post(f"/bookings/{booking.id}/cancel", json={})

        assert response.status_code == 200
        assert response.json()["refund_amount"] == 80.0
        db.refresh(payment)
        assert payment.status == "REFUNDED"

    def test_late_customer_cancellation_keeps_payment(self, client, login, db, make_booking, customer, facial, fake_stripe):
        booking = make_booking(customer, facial, utcnow() + timedelta(hours=5))
        add_payment(db, booking, 100.0)
        login(customer)

        body = client.post(f"/bookings/{booking.id}/cancel", json={}).json()

        assert body["refunded"] is False
        assert body["refund_amount"] == 0.0
        assert fake_stripe.refunds == []

    def test_provider_cancellation_refunds_everything(self, client, login, db, make_booking, customer, facial, fake_stripe):
        booking = make_booking(customer, facial, utcnow() + timedelta(hours=5))
        add_payment(db, booking, 30.0, kind="DEPOSIT", refundable=False)
        add_payment(db, booking, 70.0)
        login(facial.provider.user)

        body = client.post(f"/bookings/{booking.id}/cancel", json={"reason": "Stylist ill"}).json()

        assert body["refunded"] is True
        assert body["refund_amount"] == 100.0
        assert len(fake_stripe.refunds) == 2

    def test_deposit_is_not_refunded_to_customer(self, client, login, db, make_booking, customer, facial, fake_stripe):
        booking = make_booking(customer, facial, future_at(days=5))
        deposit = add_payment(db, booking, 30.0, kind="DEPOSIT", refundable=False)
        login(customer)

        body = client.post(f"/bookings/{booking.id}/cancel", json={}).json()

        assert body["refunded"] is False
        db.refresh(deposit)
        assert deposit.status == "COMPLETED"

    def test_other_party_is_notified(self, client, login, make_booking, customer, facial, email_mock):
        booking = make_booking(customer, facial, future_at())
        login(customer)

        client.post(f"/bookings/{booking.id}/cancel", json={})

        recipients = [call.args[0] for call in email_mock.call_args_list]
        assert facial.provider.user.email in recipients
        assert all(call.args[1] == "BOOKING_CANCELLED" for call in email_mock.call_args_list)

    def test_cannot_cancel_twice(self, client, login, make_booking, customer, facial):
        booking = make_booking(customer, facial, future_at(), status="CANCELLED")
        login(customer)
        assert client.post(f"/bookings/{booking.id}/cancel", json={}).status_code == 400

    def test_cannot_cancel_completed(self, client, login, make_booking, customer, facial):
        booking = make_booking(customer, facial, utcnow() - timedelta(days=1), status="COMPLETED")
        login(customer)
        assert client.post(f"/bookings/{booking.id}/cancel", json={}).status_code == 400


class TestReschedule:
    def test_moves_booking_and_keeps_price(self, client, login, db, make_booking, customer, facial):
        booking = make_booking(customer, facial, future_at(hour=10), price=84.0, reminder_sent=True)
        login(customer)
        new_start = future_at(days=4, hour=14)

        response = client.post(f"/bookings/{booking.id}/reschedule", json={"start_time": new_start.isoformat()})

        assert response.status_code == 200
        assert response.json()["start_time"].startswith(new_start.isoformat())
        assert response.json()["price"] == 84.0
        db.refresh(booking)
        assert booking.end_time == new_start + timedelta(minutes=60)
        assert booking.reminder_sent is False

    def test_can_shift_within_own_slot(self, client, login, make_booking, customer, facial):
        booking = make_booking(customer, facial, future_at(hour=10))
        login(customer)
        response = client.post(
            f"/bookings/{booking.id}/reschedule", json={"start_time": future_at(hour=10, minute=30).isoformat()}
        )
        assert response.status_code == 200

    def test_conflict(self, client, login, make_booking, make_user, customer, facial):
        make_booking(make_user(), facial, future_at(hour=14))
        booking = make_booking(customer, facial, future_at(hour=10))
        login(customer)

        response = client.post(f"/bookings/{booking.id}/reschedule", json={"start_time": future_at(hour=14).isoformat()})

        assert response.status_code == 409

    def test_cancelled_booking_cannot_move(self, client, login, make_booking, customer, facial):
        booking = make_booking(customer, facial, future_at(), status="CANCELLED")
        login(customer)
        response = client.post(f"/bookings/{booking.id}/reschedule", json={"start_time": future_at(days=5).isoformat()})
        assert response.status_code == 400


class TestStatusUpdates:
    def test_provider_confirms(self, client, login, make_booking, customer, facial, email_mock):
        booking = make_booking(customer, facial, future_at(), status="PENDING")
        login(facial.provider.user)

        response = client.patch(f"/bookings/{booking.id}/status", json={"status": "CONFIRMED"})

        assert response.status_code == 200
        assert response.json()["status"] == "CONFIRMED"
        assert email_mock.call_args.args[:2] == (customer.email, "BOOKING_CONFIRMATION")

    def test_customer_cannot_change_status(self, client, login, make_booking, customer, facial):
        booking = make_booking(customer, facial, future_at(), status="PENDING")
        login(customer)
        assert client.patch(f"/bookings/{booking.id}/status", json={"status": "CONFIRMED"}).status_code == 403

    def test_complete_only_after_start(self, client, login, make_booking, customer, facial):
        upcoming = make_booking(customer, facial, future_at())
        finished = make_booking(customer, facial, utcnow() - timedelta(hours=3))
        login(facial.provider.user)

        assert client.patch(f"/bookings/{upcoming.id}/status", json={"status": "COMPLETED"}).status_code == 400
        response = client.patch(f"/bookings/{finished.id}/status", json={"status": "COMPLETED"})
        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"

    def test_invalid_transition(self, client, login, make_booking, customer, facial):
        booking = make_booking(customer, facial, future_at(), status="CANCELLED")
        login(facial.provider.user)
        assert client.patch(f"/bookings/{booking.id}/status", json={"status": "CONFIRMED"}).status_code == 400

    def test_cancel_through_status(self, client, login, db, make_booking, customer, facial):
        booking = make_booking(customer, facial, future_at())
        login(facial.provider.user)

        response = client.patch(f"/bookings/{booking.id}/status", json={"status": "CANCELLED"})

        assert response.status_code == 200
        assert db.get(Booking, booking.id).cancellation_reason == "Cancelled by provider"
