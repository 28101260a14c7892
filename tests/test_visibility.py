# tests/test_visibility.py
# Слепое пятно владельца: владелец позиции не видит брони ни в одной выдаче.

from giftlist.services.visibility import can_view_claim, item_recipient_ids, visible_claims


def test_owner_never_sees_claims_end_to_end(client, auth, make_user, make_group, make_item):
    alice, bob, carol = make_user("alice"), make_user("bob"), make_user("carol")
    group = make_group(alice, members=[bob, carol], name="GroupX")
    item = make_item(alice, name="ItemY", groups=[group])

    r = client.post("/api/claims", json={"itemId": item.id}, headers=auth(bob))
    assert r.status_code == 201

    # Carol видит бронь и кто её поставил
    shared = client.get("/api/shared-items", headers=auth(carol)).json()
    assert len(shared) == 1
    [claim] = shared[0]["claims"]
    assert claim["user"]["id"] == bob.id
    assert claim["is_mine"] is False
    assert shared[0]["claimable_amount"] is None

    # Алиса: ни в одном ответе нет данных о бронях
    for path in ("/api/items", f"/api/items/{item.id}", "/api/shared-items", "/api/claims"):
        body = client.get(path, headers=auth(alice)).json()
        text = str(body)
        assert "claims" not in text
        assert bob.id not in text
    assert client.get("/api/shared-items", headers=auth(alice)).json() == []
    assert client.get("/api/claims", headers=auth(alice)).json() == []


def test_shared_items_deduplicated_across_groups(client, auth, make_user, make_group, make_item):
    alice, bob = make_user("alice"), make_user("bob")
    g1 = make_group(alice, members=[bob], name="Family")
    g2 = make_group(alice, members=[bob], name="Friends")
    make_item(alice, groups=[g1, g2])

    shared = client.get("/api/shared-items", headers=auth(bob)).json()
    assert len(shared) == 1
    assert sorted(v["group_name"] for v in shared[0]["shared_via"]) == ["Family", "Friends"]

    only_g2 = client.get("/api/shared-items", params={"groupId": g2.id}, headers=auth(bob)).json()
    assert [v["group_id"] for v in only_g2[0]["shared_via"]] == [g2.id]


def test_claimer_sees_own_claim_marked_mine(client, auth, make_user, make_group, make_item, make_claim):
    alice, bob = make_user("alice"), make_user("bob")
    group = make_group(alice, members=[bob])
    item = make_item(alice, price=3000, groups=[group])
    make_claim(item, bob, amount=1000, purchased=True)

    [entry] = client.get("/api/shared-items", headers=auth(bob)).json()
    [claim] = entry["claims"]
    assert claim["is_mine"] is True
    assert claim["is_purchased"] is True
    assert entry["claimable_amount"] == 2000


def test_expired_claims_do_not_count(client, auth, make_user, make_group, make_item, make_claim):
    alice, bob, carol = make_user("alice"), make_user("bob"), make_user("carol")
    group = make_group(alice, members=[bob, carol])
    item = make_item(alice, price=3000, groups=[group])
    make_claim(item, bob, expires_in_days=-2)

    [entry] = client.get("/api/shared-items", headers=auth(carol)).json()
    assert entry["claims"] == []
    assert entry["claimable_amount"] == 3000


class TestPredicates:
    def test_can_view_claim(self, db, make_user, make_group, make_item, make_claim):
        alice, bob, carol, eve = (make_user(n) for n in ("alice", "bob", "carol", "eve"))
        group = make_group(alice, members=[bob, carol])
        item = make_item(alice, groups=[group])
        claim = make_claim(item, bob)

        assert can_view_claim(db, claim, bob.id) is True
        assert can_view_claim(db, claim, carol.id) is True
        assert can_view_claim(db, claim, alice.id) is False
        assert can_view_claim(db, claim, eve.id) is False

    def test_visible_claims_empty_for_owner(self, db, make_user, make_group, make_item, make_claim):
        alice, bob = make_user("alice"), make_user("bob")
        group = make_group(alice, members=[bob])
        item = make_item(alice, groups=[group])
        claim = make_claim(item, bob)

        assert visible_claims(db, item, alice.id, [claim]) == []
        assert visible_claims(db, item, bob.id, [claim]) == [claim]

    def test_recipients_exclude_owner(self, db, make_user, make_group, make_item):
        alice, bob, carol = make_user("alice"), make_user("bob"), make_user("carol")
        group = make_group(alice, members=[bob, carol])
        item = make_item(alice, groups=[group])

        assert item_recipient_ids(db, item) == {bob.id, carol.id}
        assert item_recipient_ids(db, item, exclude=[bob.id]) == {carol.id}
