from __future__ import annotations

import argparse
import json
import signal
import threading

from app.api.utils import now_utc
from app.core.logging import configure_logging
from app.notifications.queue import STATUS_DEAD, NotificationQueue
from app.notifications.worker import NotificationWorker
from app.persistence.pg import init_db, session_scope


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Order management CLI")
    top = parser.add_subparsers(dest="command", required=True)

    top.add_parser("init-db", help="Create database tables")

    worker = top.add_parser("worker", help="Run the notification dispatch worker")
    worker.add_argument("--once", action="store_true", help="Process one batch and exit")

    dead = top.add_parser("dead-letters", help="Inspect or requeue dead-lettered notifications")
    dead_sub = dead.add_subparsers(dest="dead_command", required=True)
    listing = dead_sub.add_parser("list", help="List dead-lettered notifications")
    listing.add_argument("--limit", type=int, default=100)
    requeue = dead_sub.add_parser("requeue", help="Move a dead-lettered notification back to the queue")
    requeue.add_argument("message_id", type=int)

    return parser


def _run_worker(args: argparse.Namespace) -> int:
    init_db()
    worker = NotificationWorker()
    if args.once:
        print(json.dumps(worker.run_once().as_dict(), indent=2))
        return 0

    stop_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())
    signal.signal(signal.SIGINT, lambda *_: stop_event.set())
    worker.run_forever(stop_event)
    return 0


def _list_dead_letters(args: argparse.Namespace) -> int:
    with session_scope() as session:
        rows = NotificationQueue(session).list(status=STATUS_DEAD, limit=args.limit)
        payload = [
            {
                "id": row.id,
                "to": row.recipient,
                "type": row.kind,
                "attempts": row.attempts,
                "last_error": row.last_error,
                "data": (row.payload or {}).get("data", {}),
            }
            for row in rows
        ]
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def _requeue_dead_letter(args: argparse.Namespace) -> int:
    with session_scope() as session:
        row = NotificationQueue(session).requeue(args.message_id, now=now_utc())
    if row is None:
        print(f"no dead-lettered message with id={args.message_id}")
        return 1
    print(f"requeued message id={args.message_id}")
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "init-db":
        init_db()
        return 0
    if args.command == "worker":
        return _run_worker(args)
    if args.command == "dead-letters" and args.dead_command == "list":
        return _list_dead_letters(args)
    if args.command == "dead-letters" and args.dead_command == "requeue":
        return _requeue_dead_letter(args)

    parser.error("unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
