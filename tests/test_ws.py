from __future__ import annotations

from messaging_core.core.settings import USER_ID_HEADER


def _headers(user_id: str) -> dict[str, str]:
    return {USER_ID_HEADER: user_id}


def _login(websocket, user_id: str) -> dict:
    websocket.send_json({"event": "login", "data": user_id})
    ready = websocket.receive_json()
    assert ready["event"] == "ready"
    assert ready["data"]["user_id"] == user_id
    return ready


def test_ws_login_rejects_unknown_user(client):
    with client.websocket_connect("/v1/ws") as websocket:
        websocket.send_json({"event": "login", "data": "ghost"})
        response = websocket.receive_json()
        assert response["event"] == "error"
        assert response["data"]["code"] == "UNKNOWN_USER"


def test_ws_rejects_frames_before_login_and_malformed_frames(client, make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")

    with client.websocket_connect("/v1/ws") as websocket:
        websocket.send_json({"event": "sendMessage", "data": {"from": alice_id, "to": bob_id, "text": "hi"}})
        response = websocket.receive_json()
        assert response["data"]["code"] == "NOT_LOGGED_IN"

        websocket.send_text("not json")
        assert websocket.receive_json()["data"]["code"] == "INVALID_FRAME"

        websocket.send_json({"event": "typing", "data": {}})
        assert websocket.receive_json()["data"]["code"] == "INVALID_FRAME"


def test_ws_login_marks_user_online(client, make_user):
    alice_id = make_user("alice")

    with client.websocket_connect("/v1/ws") as websocket:
        _login(websocket, alice_id)
        me = client.get("/v1/users/me", headers=_headers(alice_id)).json()["data"]
        assert me["online"] is True


def test_ws_sender_must_match_login(client, make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")

    with client.websocket_connect("/v1/ws") as websocket:
        _login(websocket, alice_id)
        websocket.send_json({"event": "sendMessage", "data": {"from": bob_id, "to": alice_id, "text": "spoof"}})
        response = websocket.receive_json()
        assert response["event"] == "error"
        assert response["data"]["code"] == "FORBIDDEN_SENDER"


def test_ws_relays_stored_message_to_recipient_and_other_sender_tabs(client, make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")

    sent = client.post(f"/v1/messages/{bob_id}", json={"text": "hello bob"}, headers=_headers(alice_id))
    message_id = sent.json()["data"]["id"]

    with client.websocket_connect("/v1/ws") as bob_ws, client.websocket_connect(
        "/v1/ws"
    ) as alice_ws, client.websocket_connect("/v1/ws") as alice_other_tab:
        _login(bob_ws, bob_id)
        _login(alice_ws, alice_id)
        _login(alice_other_tab, alice_id)

        alice_ws.send_json(
            {"event": "sendMessage", "data": {"id": message_id, "from": alice_id, "to": bob_id, "text": "hello bob"}}
        )

        delivered = bob_ws.receive_json()
        assert delivered["event"] == "newMessage"
        assert delivered["data"]["id"] == message_id
        assert delivered["data"]["from"]["_id"] == alice_id
        assert delivered["data"]["from"]["username"] == "alice"
        assert delivered["data"]["text"] == "hello bob"

        echoed = alice_other_tab.receive_json()
        assert echoed["event"] == "newMessage"
        assert echoed["data"]["id"] == message_id


def test_ws_relays_unstored_message_without_id(client, make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")

    with client.websocket_connect("/v1/ws") as bob_ws, client.websocket_connect("/v1/ws") as alice_ws:
        _login(bob_ws, bob_id)
        _login(alice_ws, alice_id)

        alice_ws.send_json(
            {"event": "sendMessage", "data": {"id": "not-a-message", "from": alice_id, "to": bob_id, "text": "psst"}}
        )

        delivered = bob_ws.receive_json()
        assert delivered["event"] == "newMessage"
        assert delivered["data"]["id"] is None
        assert delivered["data"]["from"] == alice_id
        assert delivered["data"]["to"] == bob_id
        assert delivered["data"]["text"] == "psst"
        assert delivered["data"]["created_at"]
