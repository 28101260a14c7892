# tests/test_webhooks.py
# Вебхуки провайдера идентификации: подпись, создание/обновление, каскад удаления.

import json

from giftlist.models.claim import Claim
from giftlist.models.group import Group
from giftlist.models.item import Item
from giftlist.models.user import User
from giftlist.services.notifications import CLAIM_RELEASED, ITEM_DELETED, MEMBER_LEFT
from giftlist.services.webhook_signature import SIGNATURE_HEADER, sign_payload


def _post(client, event: dict, signature: str = None):
    body = json.dumps(event).encode("utf-8")
    sig = signature if signature is not None else sign_payload(body)
    return client.post(
        "/api/webhooks/auth",
        content=body,
        headers={SIGNATURE_HEADER: sig, "Content-Type": "application/json"},
    )


def test_bad_signature_rejected(client):
    r = _post(client, {"type": "user.created", "data": {"id": "x", "email": "x@example.com"}}, signature="nope")
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "invalid_signature"


def test_prefixed_signature_accepted(client):
    event = {"type": "user.created", "data": {"id": "ext-zed", "email": "zed@example.com"}}
    body = json.dumps(event).encode("utf-8")
    r = client.post(
        "/api/webhooks/auth",
        content=body,
        headers={SIGNATURE_HEADER: "sha256=" + sign_payload(body)},
    )
    assert r.status_code == 200


def test_create_then_update(client, db):
    r = _post(client, {"type": "user.created", "data": {"id": "ext-new", "email": "New@Example.com", "name": "New"}})
    assert r.status_code == 200
    assert r.json() == {"success": True}

    _post(client, {"type": "user.updated", "data": {"id": "ext-new", "name": "Renamed", "avatarUrl": "https://a/b.png"}})
    db.expire_all()
    user = db.query(User).filter_by(external_id="ext-new").one()
    assert (user.email, user.name, user.avatar_url) == ("new@example.com", "Renamed", "https://a/b.png")


def test_create_requires_email(client):
    r = _post(client, {"type": "user.created", "data": {"id": "ext-anon"}})
    assert r.status_code == 400


def test_unknown_event_type(client):
    r = _post(client, {"type": "session.created", "data": {"id": "x"}})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "validation_error"


def test_delete_unknown_user_is_noop(client):
    assert _post(client, {"type": "user.deleted", "data": {"id": "ext-ghost"}}).status_code == 200


def test_user_deleted_cascade(client, db, make_user, make_group, make_item, make_claim, notifications_of):
    alice, bob, carol = make_user("alice"), make_user("bob"), make_user("carol")
    # группа Алисы с позицией Алисы; Боб: участник и автор брони
    owned_group = make_group(alice, members=[bob, carol], name="Alice's")
    alice_item = make_item(alice, name="Bike", price=1000, groups=[owned_group])
    make_claim(alice_item, carol, amount=300)
    # группа Боба, где Алиса участник: после удаления Алисы остаётся
    bob_group = make_group(bob, members=[alice, carol], name="Bob's")
    bob_item = make_item(bob, name="Watch", groups=[bob_group])
    make_claim(bob_item, alice)
    alice_id, owned_group_id, bob_group_id = alice.id, owned_group.id, bob_group.id

    r = _post(client, {"type": "user.deleted", "data": {"id": alice.external_id}})
    assert r.status_code == 200

    db.expire_all()
    assert db.query(User).filter_by(id=alice_id).count() == 0
    assert db.query(Group).filter_by(id=owned_group_id).count() == 0
    assert db.query(Item).filter_by(owner_id=alice_id).count() == 0
    assert db.query(Claim).count() == 0
    assert db.query(Group).filter_by(id=bob_group_id).count() == 1

    # бронь Кэрол снята ещё удалением группы, до удаления позиции
    [released] = notifications_of(carol, CLAIM_RELEASED)
    assert released.data["reason"] == "group_deleted"
    assert notifications_of(carol, ITEM_DELETED) == []
    assert len(notifications_of(bob, MEMBER_LEFT)) == 1
    assert notifications_of(bob, CLAIM_RELEASED) == []
