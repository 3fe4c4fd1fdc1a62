from vibewell.domain.audit import audit_service
from vibewell.domain.audit.schemas import AuditCategory, AuditSeverity
from vibewell.domain.notifications.schemas import NotificationType
from vibewell.domain.notifications.service import NotificationService
from vibewell.models import Notification


class TestNotifyUser:
    def test_defaults_store_in_app_and_send_email(self, db, customer, email_mock, sms_mock):
        result = NotificationService(db).notify_user(
            customer, NotificationType.BOOKING_REMINDER, "Reminder", "See you tomorrow", {"booking_id": 1}
        )

        assert result.in_app and result.email_sent
        assert not result.sms_sent
        email_mock.assert_called_once_with(
            customer.email, "BOOKING_REMINDER", "Reminder", "See you tomorrow", {"booking_id": 1}
        )
        sms_mock.assert_not_called()
        assert db.get(Notification, result.notification_id).data == {"booking_id": 1}

    def test_sms_when_enabled(self, db, make_user, sms_mock):
        user = make_user(phone_number="+15551234567", notify_sms=True)

        result = NotificationService(db).notify_user(user, "PAYMENT", "Paid", "Thanks")

        assert result.sms_sent
        sms_mock.assert_called_once_with("+15551234567", "Paid: Thanks")

    def test_muted_type_is_skipped(self, db, make_user, email_mock):
        user = make_user(muted_notification_types=["REVIEW"])

        result = NotificationService(db).notify_user(user, NotificationType.REVIEW, "Review", "5 stars")

        assert result.skipped
        email_mock.assert_not_called()
        assert db.query(Notification).count() == 0

    def test_channel_failures_do_not_raise(self, db, make_user, email_mock, sms_mock):
        user = make_user(phone_number="+15551234567", notify_sms=True)
        email_mock.side_effect = RuntimeError("resend down")
        sms_mock.return_value = (False, "SMS not configured")

        result = NotificationService(db).notify_user(user, "SYSTEM", "Hello", "World")

        assert result.in_app
        assert result.email_error == "resend down"
        assert result.sms_error == "SMS not configured"

    def test_in_app_disabled(self, db, make_user):
        user = make_user(notify_in_app=False)
        result = NotificationService(db).notify_user(user, "SYSTEM", "Hello", "World")
        assert result.notification_id is None
        assert result.email_sent


class TestInbox:
    def seed(self, db, user, count):
        service = NotificationService(db)
        return [service.notify_user(user, "SYSTEM", f"Note {i}", "Body").notification_id for i in range(count)]

    def test_paginated_list_newest_first(self, client, login, db, customer):
        ids = self.seed(db, customer, 5)
        login(customer)

        body = client.get("/notifications", params={"page": 1, "page_size": 2}).json()

        assert body["total"] == 5
        assert body["unread_count"] == 5
        assert [n["id"] for n in body["notifications"]] == [ids[4], ids[3]]

    def test_mark_read_and_unread_filter(self, client, login, db, customer):
        ids = self.seed(db, customer, 3)
        login(customer)

        marked = client.post(f"/notifications/{ids[0]}/read").json()

        assert marked["is_read"] is True
        assert marked["read_at"] is not None
        assert client.get("/notifications/unread-count").json() == {"unread_count": 2}
        assert client.get("/notifications", params={"unread_only": True}).json()["total"] == 2

    def test_read_all(self, client, login, db, customer):
        self.seed(db, customer, 3)
        login(customer)
        assert client.post("/notifications/read-all").json() == {"updated": 3}
        assert client.get("/notifications/unread-count").json() == {"unread_count": 0}

    def test_cannot_touch_other_users_notifications(self, client, login, db, make_user, customer):
        [note_id] = self.seed(db, customer, 1)
        login(make_user())
        assert client.post(f"/notifications/{note_id}/read").status_code == 404
        assert client.delete(f"/notifications/{note_id}").status_code == 404

    def test_delete(self, client, login, db, customer):
        [note_id] = self.seed(db, customer, 1)
        login(customer)
        assert client.delete(f"/notifications/{note_id}").status_code == 204
        assert client.get("/notifications").json()["total"] == 0


class TestPreferences:
    def test_read_and_update(self, client, login, make_user):
        login(make_user(phone_number="+15551234567"))

        response = client.patch(
            "/notifications/preferences", json={"sms": True, "muted_types": ["REVIEW", "REVIEW", "PAYMENT"]}
        )

        assert response.json() == {"email": True, "sms": True, "in_app": True, "muted_types": ["PAYMENT", "REVIEW"]}
        assert client.get("/notifications/preferences").json()["sms"] is True

    def test_sms_requires_phone_number(self, client, login, customer):
        login(customer)
        assert client.patch("/notifications/preferences", json={"sms": True}).status_code == 400

    def test_unknown_type_rejected(self, client, login, customer):
        login(customer)
        assert client.patch("/notifications/preferences", json={"muted_types": ["SPAM"]}).status_code == 422


class TestBulkAndAlerts:
    def test_bulk_notify_is_admin_only(self, client, login, customer):
        login(customer)
        response = client.post("/notifications/bulk", json={"user_ids": [customer.id], "title": "Hi", "message": "There"})
        assert response.status_code == 403

    def test_bulk_notify(self, client, login, make_user, admin):
        muted = make_user(muted_notification_types=["SYSTEM"])
        regular = make_user()
        login(admin)

        response = client.post(
            "/notifications/bulk",
            json={"user_ids": [regular.id, muted.id, 999], "title": "Maintenance", "message": "Tonight"},
        )

        assert response.json() == {"requested": 3, "delivered": 1, "missing_user_ids": [999]}

    def test_critical_audit_issue_alerts_admins(self, db, admin, customer):
        audit_service.report_issue(
            AuditCategory.SECURITY, AuditSeverity.CRITICAL, "Open admin port", "Port 22 exposed", component="infra"
        )

        alerts = db.query(Notification).all()
        assert [(n.user_id, n.type) for n in alerts] == [(admin.id, "AUDIT_ALERT")]
        assert alerts[0].data["severity"] == "critical"

    def test_non_critical_issue_does_not_alert(self, db, admin):
        audit_service.report_issue(AuditCategory.UX, AuditSeverity.HIGH, "Slow checkout", "p95 3s")
        assert db.query(Notification).count() == 0
