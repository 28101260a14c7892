# tests/test_notifications.py
# Outbox (идемпотентность, доставка, повторы) и модель чтения уведомлений.

from datetime import timedelta

from sqlalchemy import select

from giftlist.models.notification import Notification
from giftlist.models.notification_outbox import NotificationOutbox, OutboxStatus
from giftlist.services import notifications as notification_service
from giftlist.services.notifications import (
    create_notification,
    deliver_pending,
    enqueue_notification,
    notify_users,
    requeue_stuck,
)
from giftlist.utils.ids import utcnow


def _outbox(db):
    db.expire_all()
    return list(db.scalars(select(NotificationOutbox)).all())


class TestOutbox:
    def test_duplicate_keys_are_ignored(self, db, make_user):
        bob = make_user("bob")
        for _ in range(3):
            enqueue_notification(db, user_id=bob.id, type="reminder", title="t", body="b", idempotency_key="k1")
        db.commit()
        assert len(_outbox(db)) == 1

    def test_notify_users_skips_excluded(self, db, make_user):
        alice, bob, carol = make_user("alice"), make_user("bob"), make_user("carol")
        n = notify_users(
            db, [alice.id, bob.id, carol.id], exclude=(alice.id, None), type="x", title="t", body="b"
        )
        db.commit()
        assert n == 2
        assert sorted(r.user_id for r in _outbox(db)) == sorted([bob.id, carol.id])

    def test_deliver_moves_rows_into_notifications(self, db, make_user, notifications_of):
        bob = make_user("bob")
        enqueue_notification(db, user_id=bob.id, type="reminder", title="Hi", body="there", data={"a": 1})
        db.commit()

        assert deliver_pending() == {"delivered": 1, "skipped": 0, "failed": 0}
        [n] = notifications_of(bob)
        assert (n.title, n.data, n.read) == ("Hi", {"a": 1}, False)
        [row] = _outbox(db)
        assert row.status == OutboxStatus.sent and row.sent_at is not None

        assert deliver_pending() == {"delivered": 0, "skipped": 0, "failed": 0}

    def test_missing_recipient_is_skipped(self, db):
        enqueue_notification(db, user_id="ghost", type="reminder", title="t", body="b")
        db.commit()
        assert deliver_pending()["skipped"] == 1
        [row] = _outbox(db)
        assert row.status == OutboxStatus.failed

    def test_failures_retry_then_give_up(self, monkeypatch, db, make_user):
        bob = make_user("bob")
        enqueue_notification(db, user_id=bob.id, type="reminder", title="t", body="b")
        db.commit()

        def broken(session, row):
            raise RuntimeError("boom")

        monkeypatch.setattr(notification_service, "_deliver_row", broken)
        monkeypatch.setattr(notification_service, "OUTBOX_MAX_ATTEMPTS", 2)

        assert deliver_pending()["failed"] == 1
        [row] = _outbox(db)
        assert (row.status, row.attempts, row.last_error) == (OutboxStatus.pending, 1, "boom")

        deliver_pending()
        [row] = _outbox(db)
        assert (row.status, row.attempts) == (OutboxStatus.failed, 2)

    def test_requeue_stuck_rows(self, db, make_user):
        bob = make_user("bob")
        hour_ago = utcnow() - timedelta(hours=1)
        db.add_all(
            [
                NotificationOutbox(
                    user_id=bob.id,
                    type="reminder",
                    title="stuck",
                    body="b",
                    status=OutboxStatus.processing,
                    created_at=hour_ago,
                    processing_started_at=hour_ago,
                ),
                # старая строка, которую доставляют прямо сейчас
                NotificationOutbox(
                    user_id=bob.id,
                    type="reminder",
                    title="in-flight",
                    body="b",
                    status=OutboxStatus.processing,
                    created_at=hour_ago,
                    processing_started_at=utcnow(),
                ),
            ]
        )
        db.commit()
        assert requeue_stuck(db) == 1
        by_title = {r.title: r for r in _outbox(db)}
        assert by_title["stuck"].status == OutboxStatus.pending
        assert by_title["stuck"].processing_started_at is None
        assert by_title["in-flight"].status == OutboxStatus.processing

    def test_claiming_row_stamps_processing_start(self, db, make_user):
        bob = make_user("bob")
        enqueue_notification(db, user_id=bob.id, type="reminder", title="t", body="b")
        db.commit()
        [row] = _outbox(db)
        assert row.processing_started_at is None

        assert notification_service._claim_row(db, row.id) is True
        assert notification_service._claim_row(db, row.id) is False
        [row] = _outbox(db)
        assert row.status == OutboxStatus.processing
        assert row.processing_started_at is not None

    def test_create_notification_swallows_errors(self, db):
        # user_id NOT NULL: commit падает, ошибка только логируется
        assert create_notification(db, user_id=None, type="x", title="t", body="b") is None


def _seed(db, user, count):
    base = utcnow()
    ids = []
    for i in range(count):
        n = Notification(user_id=user.id, type="reminder", title=f"n{i}", body="b", created_at=base + timedelta(seconds=i))
        db.add(n)
        db.flush()
        ids.append(n.id)
    db.commit()
    return ids


class TestReadModel:
    def test_cursor_pagination_newest_first(self, client, auth, db, make_user):
        bob = make_user("bob")
        _seed(db, bob, 5)

        page1 = client.get("/api/notifications", params={"limit": 2}, headers=auth(bob)).json()
        assert [n["title"] for n in page1["items"]] == ["n4", "n3"]
        page2 = client.get(
            "/api/notifications", params={"limit": 2, "cursor": page1["next_cursor"]}, headers=auth(bob)
        ).json()
        assert [n["title"] for n in page2["items"]] == ["n2", "n1"]
        page3 = client.get(
            "/api/notifications", params={"limit": 2, "cursor": page2["next_cursor"]}, headers=auth(bob)
        ).json()
        assert [n["title"] for n in page3["items"]] == ["n0"]
        assert page3["next_cursor"] is None

    def test_foreign_cursor_rejected(self, client, auth, db, make_user):
        alice, bob = make_user("alice"), make_user("bob")
        [foreign] = _seed(db, alice, 1)
        r = client.get("/api/notifications", params={"cursor": foreign}, headers=auth(bob))
        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "invalid_cursor"

    def test_mark_read_flow(self, client, auth, db, make_user):
        alice, bob = make_user("alice"), make_user("bob")
        ids = _seed(db, bob, 3)
        [foreign] = _seed(db, alice, 1)

        assert client.get("/api/notifications/unread-count", headers=auth(bob)).json() == {"count": 3}
        r = client.post("/api/notifications/mark-read", json={"ids": [ids[0], foreign]}, headers=auth(bob))
        assert r.json() == {"count": 2}
        assert client.get("/api/notifications/unread-count", headers=auth(alice)).json() == {"count": 1}

        unread = client.get("/api/notifications", params={"unreadOnly": "true"}, headers=auth(bob)).json()
        assert len(unread["items"]) == 2

        assert client.post("/api/notifications/mark-all-read", headers=auth(bob)).json() == {"count": 0}

    def test_patch_only_own(self, client, auth, db, make_user):
        alice, bob = make_user("alice"), make_user("bob")
        [mine] = _seed(db, bob, 1)

        r = client.patch(f"/api/notifications/{mine}", json={"read": True}, headers=auth(bob))
        assert r.status_code == 200
        assert r.json()["read"] is True

        r = client.patch(f"/api/notifications/{mine}", json={"read": False}, headers=auth(alice))
        assert r.status_code == 404
        assert r.json()["detail"]["code"] == "notification_not_found"
