import pytest
from sqlalchemy.exc import OperationalError

from servicechat.services.chat import ChatService

CHAT_UNAVAILABLE = "Chat is only available for accepted bookings."
NON_ACCEPTED = ["pending", "confirmed", "in_progress", "completed", "cancelled", "rejected", "paused"]


def join(ws, booking_id, user_id="userA"):
    ws.send_json({"event": "joinChat", "data": {"bookingId": booking_id, "userId": user_id}})


def send(ws, booking_id, sender_id, receiver_id, message):
    ws.send_json(
        {
            "event": "sendMessage",
            "data": {
                "bookingId": booking_id,
                "senderId": sender_id,
                "receiverId": receiver_id,
                "message": message,
            },
        }
    )


def get_messages(ws, booking_id):
    ws.send_json({"event": "getMessages", "data": booking_id})
    return ws.receive_json()


def texts(frame):
    return [m["text"] for m in frame["data"]]


def room_size(app, booking_id):
    return len(app.state.chat_gateway.rooms._rooms.get(booking_id, ()))


def test_accepted_booking_conversation(client, sync_db):
    sync_db.add_booking("B1", status="accepted")

    with client.websocket_connect("/ws/chat") as user_ws, client.websocket_connect("/ws/chat") as partner_ws:
        join(user_ws, "B1", "userA")
        join(partner_ws, "B1", "partnerX")
        # join is silent; the reply to getMessages proves the join was handled
        assert get_messages(user_ws, "B1") == {"event": "receiveMessage", "data": []}
        assert get_messages(partner_ws, "B1") == {"event": "receiveMessage", "data": []}

        send(user_ws, "B1", "userA", "partnerX", "hello")
        for ws in (user_ws, partner_ws):
            frame = ws.receive_json()
            assert frame["event"] == "receiveMessage"
            [message] = frame["data"]
            assert message["senderId"] == "userA"
            assert message["receiverId"] == "partnerX"
            assert message["text"] == "hello"
            assert message["timestamp"]

        send(partner_ws, "B1", "partnerX", "userA", "hi")
        for ws in (user_ws, partner_ws):
            assert texts(ws.receive_json()) == ["hello", "hi"]

    assert sync_db.count_sessions("B1") == 1
    assert sync_db.count_messages() == 2


def test_pending_booking_join_is_refused(client, app, sync_db):
    sync_db.add_booking("B2", status="pending")

    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "B2", "userA")
        assert ws.receive_json() == {"event": "error", "data": CHAT_UNAVAILABLE}
        assert room_size(app, "B2") == 0


@pytest.mark.parametrize("status", NON_ACCEPTED)
def test_non_accepted_booking_blocks_join_and_send(client, app, sync_db, status):
    sync_db.add_booking("B3", status=status)

    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "B3")
        assert ws.receive_json() == {"event": "error", "data": CHAT_UNAVAILABLE}
        send(ws, "B3", "userA", "partnerX", "anyone there?")
        assert ws.receive_json() == {"event": "error", "data": CHAT_UNAVAILABLE}

    assert room_size(app, "B3") == 0
    assert sync_db.count_sessions("B3") == 0
    assert sync_db.count_messages() == 0


def test_unknown_booking_gets_same_error_text(client, sync_db):
    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "does-not-exist")
        assert ws.receive_json() == {"event": "error", "data": CHAT_UNAVAILABLE}
        send(ws, "does-not-exist", "userA", "partnerX", "hello")
        assert ws.receive_json() == {"event": "error", "data": CHAT_UNAVAILABLE}


def test_repeated_join_keeps_single_membership(client, app, sync_db):
    sync_db.add_booking("B1")

    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "B1")
        join(ws, "B1")
        join(ws, "B1")
        get_messages(ws, "B1")
        assert room_size(app, "B1") == 1

        send(ws, "B1", "userA", "partnerX", "once")
        assert texts(ws.receive_json()) == ["once"]
        # the next frame is the reply below, not a duplicate broadcast
        ws.send_json({"event": "getMessages", "data": {"bookingId": "B1"}})
        assert texts(ws.receive_json()) == ["once"]
        assert sync_db.count_messages() == 1


def test_broadcast_matches_persisted_history(client, sync_db):
    sync_db.add_booking("B1")

    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "B1")
        for text in ("a", "b", "c"):
            send(ws, "B1", "userA", "partnerX", text)
            broadcast = ws.receive_json()
        stored = get_messages(ws, "B1")

    assert broadcast == stored
    assert texts(stored) == ["a", "b", "c"]


def test_send_requires_joining_first(client, sync_db):
    sync_db.add_booking("B1")

    with client.websocket_connect("/ws/chat") as ws:
        send(ws, "B1", "userA", "partnerX", "sneaky")
        assert ws.receive_json() == {"event": "error", "data": "Join the chat before sending messages."}

    assert sync_db.count_messages() == 0


def test_get_messages_checks_booking_status(client, sync_db):
    sync_db.add_booking("B2", status="completed")

    with client.websocket_connect("/ws/chat") as ws:
        assert get_messages(ws, "B2") == {"event": "error", "data": CHAT_UNAVAILABLE}


def test_relaxed_mode_allows_unjoined_send_and_unchecked_reads(client, app, sync_db):
    app.state.chat_gateway.strict = False
    sync_db.add_booking("B1")
    sync_db.add_booking("B2", status="pending")

    with client.websocket_connect("/ws/chat") as ws:
        send(ws, "B1", "userA", "partnerX", "hello")
        # not a room member, so no broadcast arrives; the next frame is the read
        assert texts(get_messages(ws, "B1")) == ["hello"]
        assert get_messages(ws, "B2") == {"event": "receiveMessage", "data": []}
        # eligibility still gates sends
        send(ws, "B2", "userA", "partnerX", "hello")
        assert ws.receive_json() == {"event": "error", "data": CHAT_UNAVAILABLE}


def test_disconnect_leaves_rooms(client, app, sync_db):
    sync_db.add_booking("B1")

    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "B1")
        get_messages(ws, "B1")
        assert room_size(app, "B1") == 1

    assert room_size(app, "B1") == 0


def test_other_connections_survive_a_failing_one(client, sync_db):
    sync_db.add_booking("B1")

    with client.websocket_connect("/ws/chat") as good:
        with client.websocket_connect("/ws/chat") as bad:
            bad.send_text("{not json")
            assert bad.receive_json() == {"event": "error", "data": "Invalid payload."}
        join(good, "B1")
        send(good, "B1", "userA", "partnerX", "still here")
        assert texts(good.receive_json()) == ["still here"]


@pytest.mark.parametrize(
    "frame, error",
    [
        ({"event": "typing", "data": {}}, "Unsupported event."),
        ({"data": {"bookingId": "B1"}}, "Unsupported event."),
        (["joinChat"], "Unsupported event."),
        ({"event": "joinChat", "data": {"userId": "userA"}}, "Invalid payload."),
        ({"event": "sendMessage", "data": {"bookingId": "B1", "senderId": "userA"}}, "Invalid payload."),
        ({"event": "getMessages", "data": None}, "Invalid payload."),
        (
            {
                "event": "sendMessage",
                "data": {"bookingId": "B1", "senderId": "userA", "receiverId": "partnerX", "message": "   "},
            },
            "Message text is required.",
        ),
    ],
)
def test_malformed_frames_get_error_and_keep_connection(client, sync_db, frame, error):
    sync_db.add_booking("B1")

    with client.websocket_connect("/ws/chat") as ws:
        ws.send_json(frame)
        assert ws.receive_json() == {"event": "error", "data": error}
        assert get_messages(ws, "B1") == {"event": "receiveMessage", "data": []}


def test_binary_frame_gets_error_and_keeps_connection(client, sync_db):
    sync_db.add_booking("B1")

    with client.websocket_connect("/ws/chat") as ws:
        ws.send_bytes(b'{"event": "getMessages", "data": "B1"}')
        assert ws.receive_json() == {"event": "error", "data": "Invalid payload."}
        assert get_messages(ws, "B1") == {"event": "receiveMessage", "data": []}


def test_storage_failure_is_reported_to_sender_only(client, sync_db, monkeypatch):
    sync_db.add_booking("B1")

    async def broken_session(self, booking_id):
        raise OperationalError("INSERT INTO chat_sessions", {}, Exception("disk I/O error"))

    with client.websocket_connect("/ws/chat") as sender, client.websocket_connect("/ws/chat") as listener:
        join(sender, "B1", "userA")
        join(listener, "B1", "partnerX")
        get_messages(sender, "B1")
        get_messages(listener, "B1")

        with monkeypatch.context() as patch:
            patch.setattr(ChatService, "_get_or_create_session", broken_session)
            send(sender, "B1", "userA", "partnerX", "lost")
            assert sender.receive_json() == {
                "event": "error",
                "data": "Something went wrong. Please try again.",
            }

        # no broadcast went out: the listener's next frame answers its own read
        assert get_messages(listener, "B1") == {"event": "receiveMessage", "data": []}
        assert get_messages(sender, "B1") == {"event": "receiveMessage", "data": []}

    assert sync_db.count_messages() == 0


def test_status_change_closes_the_room(client, app, sync_db, admin_headers):
    sync_db.add_booking("B1")

    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "B1")
        get_messages(ws, "B1")
        assert room_size(app, "B1") == 1

        response = client.patch(
            "/api/v1/bookings/B1/status", json={"status": "paused"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert room_size(app, "B1") == 0

        send(ws, "B1", "userA", "partnerX", "still open?")
        assert ws.receive_json() == {"event": "error", "data": CHAT_UNAVAILABLE}


def test_completing_booking_closes_the_room(client, app, sync_db, admin_headers):
    sync_db.add_booking("B1")

    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "B1")
        get_messages(ws, "B1")

        response = client.post("/api/v1/bookings/B1/complete", headers=admin_headers)
        assert response.status_code == 200
        assert room_size(app, "B1") == 0
