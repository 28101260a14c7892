# tests/test_claims.py
# Движок броней: порядок проверок, полные/частичные брони, покупка, «мои брони».

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

from giftlist.models.claim import Claim
from giftlist.models.item import ItemStatus
from giftlist.services import claims as claim_service
from giftlist.services.claims import compute_claimable_amount
from giftlist.services.notifications import ITEM_CLAIMED, ITEM_PURCHASED, ITEM_UNPURCHASED, deliver_pending


@pytest.fixture
def family(make_user, make_group):
    alice, bob, carol, dave = (make_user(n) for n in ("alice", "bob", "carol", "dave"))
    group = make_group(alice, members=[bob, carol, dave])
    return alice, bob, carol, dave, group


class TestClaimableAmount:
    def test_no_price_means_full_claims_only(self):
        assert compute_claimable_amount(None, []) is None

    def test_full_claim_leaves_nothing(self):
        assert compute_claimable_amount(10000, [Claim(amount=None)]) == 0

    def test_partials_are_subtracted(self):
        assert compute_claimable_amount(10000, [Claim(amount=4000), Claim(amount=1000)]) == 5000

    def test_never_negative(self):
        assert compute_claimable_amount(100, [Claim(amount=300)]) == 0


class TestCreateClaimOrder:
    def test_missing_item(self, client, auth, family):
        _, bob, *_ = family
        r = client.post("/api/claims", json={"itemId": "nope"}, headers=auth(bob))
        assert r.status_code == 404
        assert r.json()["detail"]["code"] == "item_not_found"

    def test_owner_cannot_claim(self, client, auth, family, make_item):
        alice, *_, group = family
        item = make_item(alice, groups=[group])
        r = client.post("/api/claims", json={"itemId": item.id}, headers=auth(alice))
        assert r.status_code == 403
        assert r.json()["detail"]["code"] == "cannot_claim_own_item"

    def test_non_recipient_forbidden(self, client, auth, family, make_item, make_user):
        alice, *_, group = family
        stranger = make_user("eve")
        item = make_item(alice, groups=[group])
        r = client.post("/api/claims", json={"itemId": item.id}, headers=auth(stranger))
        assert r.status_code == 403
        assert r.json()["detail"]["code"] == "not_a_recipient"

    def test_inactive_item_conflict(self, client, auth, family, make_item):
        alice, bob, *_, group = family
        item = make_item(alice, groups=[group], status=ItemStatus.received)
        r = client.post("/api/claims", json={"itemId": item.id}, headers=auth(bob))
        assert r.status_code == 409
        assert r.json()["detail"]["code"] == "item_not_active"

    def test_zero_amount_is_validation_error(self, client, auth, family, make_item):
        alice, bob, *_, group = family
        item = make_item(alice, price=1000, groups=[group])
        r = client.post("/api/claims", json={"itemId": item.id, "amount": 0}, headers=auth(bob))
        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "validation_error"


class TestFullClaims:
    def test_full_claim_created(self, client, auth, family, make_item):
        alice, bob, *_, group = family
        item = make_item(alice, groups=[group])
        r = client.post("/api/claims", json={"itemId": item.id, "amount": None}, headers=auth(bob))
        assert r.status_code == 201
        body = r.json()
        assert body["item_id"] == item.id
        assert body["user_id"] == bob.id
        assert body["amount"] is None
        assert body["purchased_at"] is None
        assert body["expires_at"] is not None

    def test_second_full_claim_conflicts(self, client, auth, family, make_item):
        alice, bob, carol, _, group = family
        item = make_item(alice, groups=[group])
        assert client.post("/api/claims", json={"itemId": item.id}, headers=auth(bob)).status_code == 201
        r = client.post("/api/claims", json={"itemId": item.id}, headers=auth(carol))
        assert r.status_code == 409
        assert r.json()["detail"]["code"] == "already_claimed"

    def test_database_rejects_two_full_claims(self, db, family, make_item, make_claim):
        alice, bob, carol, _, group = family
        item = make_item(alice, groups=[group])
        make_claim(item, bob)
        db.add(Claim(item_id=item.id, user_id=carol.id, amount=None))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_partial_after_full_conflicts(self, client, auth, family, make_item):
        alice, bob, carol, _, group = family
        item = make_item(alice, price=5000, groups=[group])
        client.post("/api/claims", json={"itemId": item.id}, headers=auth(bob))
        r = client.post("/api/claims", json={"itemId": item.id, "amount": 100}, headers=auth(carol))
        assert r.status_code == 409
        assert r.json()["detail"]["code"] == "already_claimed"

    def test_full_after_partials_reports_remaining(self, client, auth, family, make_item):
        alice, bob, carol, _, group = family
        item = make_item(alice, price=5000, groups=[group])
        client.post("/api/claims", json={"itemId": item.id, "amount": 2000}, headers=auth(bob))
        r = client.post("/api/claims", json={"itemId": item.id}, headers=auth(carol))
        assert r.status_code == 409
        assert r.json()["detail"]["code"] == "partially_claimed"
        assert r.json()["detail"]["remaining_amount"] == 3000


class TestPartialClaims:
    def test_price_required(self, client, auth, family, make_item):
        alice, bob, *_, group = family
        item = make_item(alice, price=None, groups=[group])
        r = client.post("/api/claims", json={"itemId": item.id, "amount": 500}, headers=auth(bob))
        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "price_required"

    def test_split_gift_end_to_end(self, client, auth, family, make_item):
        alice, bob, carol, dave, group = family
        item = make_item(alice, price=10000, groups=[group])

        r = client.post("/api/claims", json={"itemId": item.id, "amount": 4000}, headers=auth(bob))
        assert r.status_code == 201
        shared = client.get("/api/shared-items", headers=auth(carol)).json()
        assert shared[0]["claimable_amount"] == 6000

        r = client.post("/api/claims", json={"itemId": item.id, "amount": 7000}, headers=auth(carol))
        assert r.status_code == 409
        assert r.json()["detail"]["code"] == "amount_exceeds_remaining"
        assert r.json()["detail"]["remaining_amount"] == 6000

        r = client.post("/api/claims", json={"itemId": item.id, "amount": 6000}, headers=auth(carol))
        assert r.status_code == 201
        shared = client.get("/api/shared-items", headers=auth(dave)).json()
        assert shared[0]["claimable_amount"] == 0

        for payload in ({"itemId": item.id, "amount": 1}, {"itemId": item.id}):
            r = client.post("/api/claims", json=payload, headers=auth(dave))
            assert r.status_code == 409
            assert r.json()["detail"]["code"] == "fully_claimed"

    def test_sum_never_exceeds_price(self, db, family, make_item, claims_on):
        alice, bob, carol, dave, group = family
        item = make_item(alice, price=1000, groups=[group])
        attempts = [(bob, 400), (carol, 400), (dave, 400), (carol, 200), (dave, 1)]
        for user, amount in attempts:
            try:
                claim_service.create_claim(db, item_id=item.id, user=user, amount=amount)
            except HTTPException as e:
                assert e.status_code == 409
        assert sum(c.amount for c in claims_on(item)) <= 1000
        assert sum(c.amount for c in claims_on(item)) == 1000


class TestReleaseAndPurchase:
    def test_release_then_claim_again(self, client, auth, family, make_item, claims_on):
        alice, bob, carol, _, group = family
        item = make_item(alice, groups=[group])
        claim_id = client.post("/api/claims", json={"itemId": item.id}, headers=auth(bob)).json()["id"]

        assert client.delete(f"/api/claims/{claim_id}", headers=auth(bob)).status_code == 204
        assert claims_on(item) == []

        r = client.post("/api/claims", json={"itemId": item.id}, headers=auth(carol))
        assert r.status_code == 201
        r = client.post("/api/claims", json={"itemId": item.id}, headers=auth(carol))
        assert r.status_code == 409

    def test_cannot_release_someone_elses_claim(self, client, auth, family, make_item, make_claim):
        alice, bob, carol, _, group = family
        item = make_item(alice, groups=[group])
        claim = make_claim(item, bob)
        r = client.delete(f"/api/claims/{claim.id}", headers=auth(carol))
        assert r.status_code == 404
        assert r.json()["detail"]["code"] == "claim_not_found"

    def test_purchase_toggle(self, client, auth, family, make_item, make_claim):
        alice, bob, *_, group = family
        item = make_item(alice, groups=[group])
        claim = make_claim(item, bob)

        r = client.post(f"/api/claims/{claim.id}/purchase", headers=auth(bob))
        assert r.status_code == 200
        assert r.json()["purchased_at"] is not None

        r = client.post(f"/api/claims/{claim.id}/purchase", headers=auth(bob))
        assert r.status_code == 409
        assert r.json()["detail"]["code"] == "already_purchased"

        r = client.delete(f"/api/claims/{claim.id}/purchase", headers=auth(bob))
        assert r.status_code == 200
        assert r.json()["purchased_at"] is None

        r = client.delete(f"/api/claims/{claim.id}/purchase", headers=auth(bob))
        assert r.status_code == 409
        assert r.json()["detail"]["code"] == "not_purchased"

    def test_purchase_notifies_recipients_but_not_owner(self, client, auth, family, make_item, make_claim, notifications_of):
        alice, bob, carol, dave, group = family
        item = make_item(alice, groups=[group])
        claim = make_claim(item, bob)
        client.post(f"/api/claims/{claim.id}/purchase", headers=auth(bob))

        assert len(notifications_of(carol, ITEM_PURCHASED)) == 1
        assert len(notifications_of(dave, ITEM_PURCHASED)) == 1
        assert notifications_of(bob, ITEM_PURCHASED) == []
        assert notifications_of(alice) == []

    def test_unpurchase_is_silent_by_default(self, client, auth, family, make_item, make_claim, notifications_of):
        alice, bob, carol, _, group = family
        item = make_item(alice, groups=[group])
        claim = make_claim(item, bob, purchased=True)
        client.delete(f"/api/claims/{claim.id}/purchase", headers=auth(bob))
        assert notifications_of(carol, ITEM_UNPURCHASED) == []

    def test_unpurchase_notifies_when_enabled(self, monkeypatch, client, auth, family, make_item, make_claim, notifications_of):
        monkeypatch.setattr(claim_service, "NOTIFY_ON_UNPURCHASE", True)
        alice, bob, carol, _, group = family
        item = make_item(alice, groups=[group])
        claim = make_claim(item, bob, purchased=True)
        client.delete(f"/api/claims/{claim.id}/purchase", headers=auth(bob))
        assert len(notifications_of(carol, ITEM_UNPURCHASED)) == 1
        assert notifications_of(alice) == []


class TestClaimNotifications:
    def test_other_recipients_notified_not_owner_or_claimer(self, db, family, make_item, notifications_of):
        alice, bob, carol, dave, group = family
        item = make_item(alice, groups=[group])
        claim_service.create_claim(db, item_id=item.id, user=bob, amount=None)
        deliver_pending()

        assert [n.type for n in notifications_of(carol)] == [ITEM_CLAIMED]
        assert [n.type for n in notifications_of(dave)] == [ITEM_CLAIMED]
        assert notifications_of(bob) == []
        assert notifications_of(alice) == []


class TestMyClaims:
    def test_lists_claims_with_item_and_owner(self, client, auth, family, make_item, make_claim):
        alice, bob, *_, group = family
        item = make_item(alice, name="Lego", price=5000, groups=[group])
        make_claim(item, bob, amount=2500)

        r = client.get("/api/claims", headers=auth(bob))
        assert r.status_code == 200
        [row] = r.json()
        assert row["amount"] == 2500
        assert row["item"]["name"] == "Lego"
        assert row["item"]["owner"]["id"] == alice.id

    def test_expired_claims_are_hidden(self, client, auth, family, make_item, make_claim):
        alice, bob, *_, group = family
        item = make_item(alice, groups=[group])
        make_claim(item, bob, expires_in_days=-1)
        assert client.get("/api/claims", headers=auth(bob)).json() == []
