from __future__ import annotations

from messaging_core.core.settings import USER_ID_HEADER


def _headers(user_id: str) -> dict[str, str]:
    return {USER_ID_HEADER: user_id}


def test_friend_request_accept_creates_friendship_both_ways(client, make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")

    first = client.post(f"/v1/social/friend-requests/{bob_id}", headers=_headers(alice_id))
    assert first.status_code == 201
    repeat = client.post(f"/v1/social/friend-requests/{bob_id}", headers=_headers(alice_id))
    assert repeat.status_code == 201

    incoming = client.get("/v1/social/friend-requests", headers=_headers(bob_id)).json()["data"]
    assert [user["id"] for user in incoming] == [alice_id]

    accepted = client.post(f"/v1/social/friend-requests/{alice_id}/accept", headers=_headers(bob_id))
    assert accepted.status_code == 200

    alice_friends = client.get("/v1/social/friends", headers=_headers(alice_id)).json()["data"]
    bob_friends = client.get("/v1/social/friends", headers=_headers(bob_id)).json()["data"]
    assert [user["id"] for user in alice_friends] == [bob_id]
    assert [user["id"] for user in bob_friends] == [alice_id]
    assert client.get("/v1/social/friend-requests", headers=_headers(bob_id)).json()["data"] == []

    conflict = client.post(f"/v1/social/friend-requests/{bob_id}", headers=_headers(alice_id))
    assert conflict.status_code == 409
    assert conflict.json()["error"]["code"] == "already_friends"


def test_friend_request_edge_cases(client, make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")

    to_self = client.post(f"/v1/social/friend-requests/{alice_id}", headers=_headers(alice_id))
    assert to_self.status_code == 400

    missing = client.post(f"/v1/social/friend-requests/{alice_id}/accept", headers=_headers(bob_id))
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "friend_request_not_found"

    client.post(f"/v1/social/friend-requests/{bob_id}", headers=_headers(alice_id))
    declined = client.post(f"/v1/social/friend-requests/{alice_id}/decline", headers=_headers(bob_id))
    assert declined.status_code == 200
    assert client.get("/v1/social/friends", headers=_headers(bob_id)).json()["data"] == []


def test_user_search_and_me(client, make_user):
    alice_id = make_user("alice", full_name="Alice Liddell")
    make_user("alfred")
    make_user("bob", full_name="Bob Alison")

    me = client.get("/v1/users/me", headers=_headers(alice_id))
    assert me.status_code == 200
    assert me.json()["data"]["username"] == "alice"

    found = client.get("/v1/users/search", params={"query": "AL"}, headers=_headers(alice_id))
    assert found.status_code == 200
    usernames = [user["username"] for user in found.json()["data"]["users"]]
    assert usernames == ["alfred", "bob"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"data": {"ok": True}}
