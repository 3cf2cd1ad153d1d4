import os

os.environ.setdefault("DB_BACKEND", "sqlite")


def test_core_imports():
    import core.context  # noqa: F401
    import core.models  # noqa: F401
    import core.services.delivery  # noqa: F401
    import core.services.follow_workflow  # noqa: F401
    import app.main  # noqa: F401


def test_core_smoke_lifecycle(server_db, make_user, presence, run):
    from core.services import delivery, social_graph

    alice = make_user("alice")
    bob = make_user("bob")

    social_graph.send_follow_request(alice["id"], bob["id"])
    social_graph.accept_follow_request(bob["id"], alice["id"])
    social_graph.follow(bob["id"], alice["id"])

    message = run(delivery.send_message(alice["id"], bob["id"], "hi", presence=presence))
    assert message["status"] == "sent"

    result = run(delivery.update_message_status(message["id"], "read", presence=presence))
    assert result["updated"] is True
    assert result["message"]["status"] == "read"

    conversation = run(delivery.get_messages(bob["id"], alice["id"]))
    assert [item["id"] for item in conversation] == [message["id"]]
