from __future__ import annotations

import json

import app.persistence.pg as pg
from app.cli import main
from app.persistence.models import NotificationMessageModel


def _dead_message(clock) -> int:
    with pg.session_scope() as session:
        now = clock()
        row = NotificationMessageModel(
            recipient="someone@example.com",
            kind="shipped",
            payload={"to": "someone@example.com", "type": "shipped", "data": {"order_id": 7}},
            status="dead",
            attempts=5,
            available_at=now,
            created_at=now,
            updated_at=now,
            last_error="smtp down",
        )
        session.add(row)
        session.flush()
        return row.id


def test_dead_letters_list_and_requeue(capsys, clock):
    message_id = _dead_message(clock)

    assert main(["dead-letters", "list"]) == 0
    listed = json.loads(capsys.readouterr().out)
    assert [item["id"] for item in listed] == [message_id]
    assert listed[0]["data"] == {"order_id": 7}

    assert main(["dead-letters", "requeue", str(message_id)]) == 0
    assert "requeued" in capsys.readouterr().out
    assert main(["dead-letters", "requeue", str(message_id)]) == 1


def test_worker_once_drains_queue(capsys, mailer, clock):
    message_id = _dead_message(clock)
    main(["dead-letters", "requeue", str(message_id)])
    capsys.readouterr()

    assert main(["worker", "--once"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["sent"] == 1
    assert mailer.sent[0]["subject"] == "Your order has been shipped"
