import os

os.environ.setdefault("DB_BACKEND", "sqlite")

import pytest

from conftest import FakeConnection, FakeUploader
from core.errors import DependencyFailure, NotFoundIssue, PermissionDenied, ValidationIssue
from core.models import Message
from core.services import delivery, social_graph


def _message_count(db_session):
    return db_session.query(Message).count()


def test_request_accept_is_not_enough_to_message(make_user, presence, run):
    alice = make_user("alice")
    bob = make_user("bob")

    social_graph.send_follow_request(alice["id"], bob["id"])
    social_graph.accept_follow_request(bob["id"], alice["id"])

    with pytest.raises(PermissionDenied) as excinfo:
        run(delivery.send_message(alice["id"], bob["id"], "hi", presence=presence))
    assert str(excinfo.value) == "Both users must follow each other to chat."

    social_graph.follow(bob["id"], alice["id"])
    message = run(delivery.send_message(alice["id"], bob["id"], "hi", presence=presence))
    assert message["status"] == "sent"
    assert message["sender_id"] == alice["id"]
    assert message["receiver_id"] == bob["id"]


def test_gate_runs_before_content_checks(make_user, presence, run):
    alice = make_user("alice")
    bob = make_user("bob")
    with pytest.raises(PermissionDenied):
        run(delivery.send_message(alice["id"], bob["id"], None, presence=presence))


def test_empty_message_persists_nothing(make_user, make_mutual, presence, run, db_session):
    alice = make_user("alice")
    bob = make_user("bob")
    make_mutual(alice, bob)

    with pytest.raises(ValidationIssue) as excinfo:
        run(delivery.send_message(alice["id"], bob["id"], "   ", presence=presence))
    assert excinfo.value.code == "empty_message"
    assert _message_count(db_session) == 0


def test_new_message_pushed_to_online_receiver(make_user, make_mutual, presence, run):
    alice = make_user("alice")
    bob = make_user("bob")
    make_mutual(alice, bob)
    bob_conn = FakeConnection()

    async def scenario():
        await presence.connect(bob["id"], bob_conn)
        message = await delivery.send_message(alice["id"], bob["id"], "hello", presence=presence)
        await presence.drain()
        return message

    message = run(scenario())
    assert bob_conn.events("newMessage") == [message]


def test_image_message_uses_uploaded_url(make_user, make_mutual, presence, run):
    alice = make_user("alice")
    bob = make_user("bob")
    make_mutual(alice, bob)
    uploader = FakeUploader(failures=1)

    message = run(
        delivery.send_message(
            alice["id"], bob["id"], None, "data:image/png;base64,AAAA",
            presence=presence, uploader=uploader,
        )
    )

    assert message["image"] == uploader.url
    assert message["text"] is None
    assert uploader.calls == 2


def test_upload_failure_persists_nothing(make_user, make_mutual, presence, run, db_session):
    alice = make_user("alice")
    bob = make_user("bob")
    make_mutual(alice, bob)
    uploader = FakeUploader(failures=10)

    with pytest.raises(DependencyFailure) as excinfo:
        run(
            delivery.send_message(
                alice["id"], bob["id"], "caption", "data:image/png;base64,AAAA",
                presence=presence, uploader=uploader,
            )
        )
    assert excinfo.value.code == "upload_failed"
    assert excinfo.value.status_code == 500
    assert uploader.calls == 3
    assert _message_count(db_session) == 0


def test_conversation_is_chronological_both_directions(make_user, make_mutual, presence, run):
    alice = make_user("alice")
    bob = make_user("bob")
    carol = make_user("carol")
    make_mutual(alice, bob)
    make_mutual(alice, carol)

    first = run(delivery.send_message(alice["id"], bob["id"], "one", presence=presence))
    run(delivery.send_message(alice["id"], carol["id"], "elsewhere", presence=presence))
    second = run(delivery.send_message(bob["id"], alice["id"], "two", presence=presence))
    third = run(delivery.send_message(alice["id"], bob["id"], "three", presence=presence))

    conversation = run(delivery.get_messages(bob["id"], alice["id"]))
    assert [item["id"] for item in conversation] == [first["id"], second["id"], third["id"]]


def test_get_messages_requires_mutual_follow(make_user, presence, run):
    alice = make_user("alice")
    bob = make_user("bob")
    with pytest.raises(PermissionDenied):
        run(delivery.get_messages(alice["id"], bob["id"]))


def test_delivered_twice_is_idempotent(make_user, make_mutual, presence, run):
    alice = make_user("alice")
    bob = make_user("bob")
    make_mutual(alice, bob)
    alice_conn = FakeConnection()

    async def scenario():
        await presence.connect(alice["id"], alice_conn)
        message = await delivery.send_message(alice["id"], bob["id"], "hi", presence=presence)
        first = await delivery.update_message_status(message["id"], "delivered", presence=presence)
        second = await delivery.update_message_status(message["id"], "delivered", presence=presence)
        await presence.drain()
        return message, first, second

    message, first, second = run(scenario())
    assert first["updated"] is True
    assert second["updated"] is False
    assert second["message"]["status"] == "delivered"
    assert alice_conn.events("messageStatusUpdate") == [
        {"message_id": message["id"], "status": "delivered"}
    ]


def test_status_never_moves_backwards(make_user, make_mutual, presence, run):
    alice = make_user("alice")
    bob = make_user("bob")
    make_mutual(alice, bob)
    message = run(delivery.send_message(alice["id"], bob["id"], "hi", presence=presence))

    observed = []
    for status in ("read", "delivered", "read", "delivered"):
        result = run(delivery.update_message_status(message["id"], status, presence=presence))
        observed.append(result["message"]["status"])

    assert observed == ["read", "read", "read", "read"]


def test_invalid_status_and_missing_message(make_user, make_mutual, presence, run):
    alice = make_user("alice")
    bob = make_user("bob")
    make_mutual(alice, bob)
    message = run(delivery.send_message(alice["id"], bob["id"], "hi", presence=presence))

    for status in ("sent", "archived"):
        with pytest.raises(ValidationIssue) as excinfo:
            run(delivery.update_message_status(message["id"], status, presence=presence))
        assert excinfo.value.code == "invalid_status"

    with pytest.raises(NotFoundIssue):
        run(delivery.update_message_status(message["id"] + 100, "read", presence=presence))


def test_only_receiver_may_update_status(make_user, make_mutual, presence, run):
    alice = make_user("alice")
    bob = make_user("bob")
    make_mutual(alice, bob)
    message = run(delivery.send_message(alice["id"], bob["id"], "hi", presence=presence))

    with pytest.raises(PermissionDenied) as excinfo:
        run(delivery.update_message_status(message["id"], "read", presence=presence, actor_id=alice["id"]))
    assert excinfo.value.code == "not_message_recipient"

    result = run(delivery.update_message_status(message["id"], "read", presence=presence, actor_id=bob["id"]))
    assert result["updated"] is True


def test_mark_all_read_emits_one_event(make_user, make_mutual, presence, run):
    sender = make_user("sender")
    receiver = make_user("receiver")
    make_mutual(sender, receiver)
    sender_conn = FakeConnection()

    async def scenario():
        await presence.connect(sender["id"], sender_conn)
        ids = []
        for index in range(5):
            message = await delivery.send_message(
                sender["id"], receiver["id"], f"msg {index}", presence=presence
            )
            ids.append(message["id"])
        result = await delivery.mark_all_read(receiver["id"], sender["id"], presence=presence)
        await presence.drain()
        return result

    result = run(scenario())
    assert result == {"updated_count": 5}
    assert sender_conn.events("bulkReadStatusUpdate") == [{"from": receiver["id"]}]

    statuses = {item["status"] for item in run(delivery.get_messages(receiver["id"], sender["id"]))}
    assert statuses == {"read"}


def test_mark_all_read_with_nothing_unread_is_silent(make_user, make_mutual, presence, run):
    sender = make_user("sender")
    receiver = make_user("receiver")
    make_mutual(sender, receiver)
    sender_conn = FakeConnection()

    async def scenario():
        await presence.connect(sender["id"], sender_conn)
        result = await delivery.mark_all_read(receiver["id"], sender["id"], presence=presence)
        await presence.drain()
        return result

    assert run(scenario()) == {"updated_count": 0}
    assert sender_conn.events("bulkReadStatusUpdate") == []


def test_relay_message_only_for_sender(make_user, make_mutual, presence, run):
    alice = make_user("alice")
    bob = make_user("bob")
    make_mutual(alice, bob)
    bob_conn = FakeConnection()

    async def scenario():
        message = await delivery.send_message(alice["id"], bob["id"], "hi", presence=presence)
        await presence.connect(bob["id"], bob_conn)
        delivered = await delivery.relay_message(message["id"], alice["id"], presence=presence)
        with pytest.raises(PermissionDenied):
            await delivery.relay_message(message["id"], bob["id"], presence=presence)
        return message, delivered

    message, delivered = run(scenario())
    assert delivered is True
    assert bob_conn.events("newMessage") == [message]
