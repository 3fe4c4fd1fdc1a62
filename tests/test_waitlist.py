from datetime import timedelta

import pytest
from conftest import future_at

from vibewell.domain.bookings.availability import utcnow
from vibewell.domain.bookings.waitlist import WaitlistService, calculate_priority, loyalty_multiplier
from vibewell.models import WaitlistEntry


class TestPriority:
    @pytest.mark.parametrize("bookings,expected", [(0, 1.0), (4, 1.0), (5, 1.25), (10, 1.5), (19, 1.5), (20, 2.0)])
    def test_loyalty_tiers(self, bookings, expected):
        assert loyalty_multiplier(bookings) == expected

    def test_base_priority_only(self):
        assert calculate_priority(1.0, 0, 0) == 1.0

    def test_loyalty_and_waiting_time(self):
        assert calculate_priority(2.0, 20, 0) == 4.0
        assert calculate_priority(1.0, 10, 5) == 2.0
        assert calculate_priority(1.0, 5, 3) == 1.55

    def test_negative_wait_is_ignored(self):
        assert calculate_priority(1.0, 0, -3) == 1.0


@pytest.fixture
def single_slot_service(make_provider, make_service):
    """A service with exactly one bookable slot per day (10:00-11:00)"""
    provider = make_provider(business_hours_start=10, business_hours_end=11)
    return make_service(provider, duration_minutes=60)


def join(client, service, day, base_priority=1.0):
    return client.post(
        "/bookings/waitlist",
        json={"service_id": service.id, "preferred_dates": [day.isoformat()], "base_priority": base_priority},
    )


class TestWaitlistApi:
    def test_free_slot_notifies_immediately(self, client, login, customer, facial, email_mock):
        login(customer)

        response = join(client, facial, future_at().date())

        assert response.status_code == 201
        assert response.json()["status"] == "NOTIFIED"
        assert email_mock.call_args.args[1] == "WAITLIST_SLOT_AVAILABLE"

    def test_full_day_stays_pending(self, client, login, make_booking, make_user, customer, single_slot_service):
        make_booking(make_user(), single_slot_service, future_at(hour=10))
        login(customer)

        body = join(client, single_slot_service, future_at().date()).json()

        assert body["status"] == "PENDING"
        assert body["priority"] == 1.0

    def test_cancellation_offers_slot_to_highest_priority(
        self, client, login, db, make_booking, make_user, single_slot_service, email_mock
    ):
        day = future_at().date()
        holder = make_user()
        booking = make_booking(holder, single_slot_service, future_at(hour=10))

        casual, loyal = make_user(), make_user()
        for weeks in range(1, 6):
            make_booking(loyal, single_slot_service, utcnow() - timedelta(weeks=weeks), status="COMPLETED")
        login(casual)
        join(client, single_slot_service, day)
        login(loyal)
        join(client, single_slot_service, day)

        login(holder)
        client.post(f"/bookings/{booking.id}/cancel", json={})

        statuses = {e.customer_id: e.status for e in db.query(WaitlistEntry).all()}
        assert statuses == {casual.id: "PENDING", loyal.id: "NOTIFIED"}
        assert email_mock.call_args_list[-1].args[:2] == (loyal.email, "WAITLIST_SLOT_AVAILABLE")

    def test_tie_goes_to_earliest_entry(self, client, login, db, make_booking, make_user, single_slot_service):
        day = future_at().date()
        booking = make_booking(make_user(), single_slot_service, future_at(hour=10))
        first, second = make_user(), make_user()
        for user in (first, second):
            login(user)
            join(client, single_slot_service, day)

        booking.status = "CANCELLED"
        db.commit()
        entry = WaitlistService(db).process_waitlist(single_slot_service.id, day)

        assert entry.customer_id == first.id

    def test_only_entries_for_that_day_are_offered(self, client, login, db, make_booking, make_user, single_slot_service):
        make_booking(make_user(), single_slot_service, future_at(days=4, hour=10))
        login(make_user())
        assert join(client, single_slot_service, future_at(days=4).date()).json()["status"] == "PENDING"

        assert WaitlistService(db).process_waitlist(single_slot_service.id, future_at(days=5).date()) is None

    def test_duplicate_join_rejected(self, client, login, make_booking, make_user, customer, single_slot_service):
        make_booking(make_user(), single_slot_service, future_at(hour=10))
        login(customer)
        assert join(client, single_slot_service, future_at().date()).status_code == 201
        assert join(client, single_slot_service, future_at().date()).status_code == 409

    def test_past_dates_rejected(self, client, login, customer, facial):
        login(customer)
        assert join(client, facial, (utcnow() - timedelta(days=2)).date()).status_code == 400

    def test_priority_bounds(self, client, login, customer, facial):
        login(customer)
        assert join(client, facial, future_at().date(), base_priority=0).status_code == 422
        assert join(client, facial, future_at().date(), base_priority=11).status_code == 422

    def test_list_and_leave(self, client, login, make_booking, make_user, customer, single_slot_service):
        make_booking(make_user(), single_slot_service, future_at(hour=10))
        login(customer)
        entry_id = join(client, single_slot_service, future_at().date()).json()["id"]

        assert [e["id"] for e in client.get("/bookings/waitlist").json()] == [entry_id]
        assert client.delete(f"/bookings/waitlist/{entry_id}").json()["status"] == "EXPIRED"

        login(make_user())
        assert client.delete(f"/bookings/waitlist/{entry_id}").status_code == 404


def test_expire_past_entries(db, customer, facial):
    yesterday = (utcnow() - timedelta(days=1)).date().isoformat()
    tomorrow = (utcnow() + timedelta(days=1)).date().isoformat()
    stale = WaitlistEntry(customer_id=customer.id, service_id=facial.id, preferred_dates=[yesterday])
    live = WaitlistEntry(customer_id=customer.id, service_id=facial.id, preferred_dates=[yesterday, tomorrow])
    db.add_all([stale, live])
    db.commit()

    assert WaitlistService(db).expire_past_entries() == 1
    assert stale.status == "EXPIRED"
    assert live.status == "PENDING"
