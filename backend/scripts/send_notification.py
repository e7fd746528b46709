#!/usr/bin/env python3
"""
Send a notification from the command line and print the push dispatch report.

Run from backend:
  poetry run python scripts/send_notification.py broadcast "Maintenance" "System down 10pm" --sender Admin
  poetry run python scripts/send_notification.py targeted "Reminder" "Your appointment is at 3pm" --user u1 --user u2
  poetry run python scripts/send_notification.py add-user u1 --email u1@example.com
"""
import argparse
import json
import sys
from pathlib import Path

# Ensure backend is on path when run as script
backend_dir = Path(__file__).resolve().parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from fanout.api.deps import build_service
from fanout.core.errors import FanoutError
from fanout.db.session import SessionLocal
from fanout.services.directory import register_profile
from fanout.services.dispatch import DispatchReport


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Send in-app + push notifications")
    sub = parser.add_subparsers(dest="command", required=True)

    b = sub.add_parser("broadcast", help="Send to every known user")
    b.add_argument("title")
    b.add_argument("body")
    b.add_argument("--sender", default=None, help="Sender label (default from settings)")

    t = sub.add_parser("targeted", help="Send to specific users")
    t.add_argument("title")
    t.add_argument("body")
    t.add_argument("--user", dest="users", action="append", default=[], help="Recipient user id (repeatable)")
    t.add_argument("--sender", default=None)

    u = sub.add_parser("add-user", help="Register a user id in the profiles directory")
    u.add_argument("user_id")
    u.add_argument("--email", default=None)
    return parser


def main() -> int:
    args = _parser().parse_args()

    if args.command == "add-user":
        db = SessionLocal()
        try:
            created = register_profile(db, args.user_id, args.email)
        finally:
            db.close()
        print(f"{'Added' if created else 'Already present'}: {args.user_id}")
        return 0

    service, runner = build_service(SessionLocal)
    try:
        if args.command == "broadcast":
            notification_id = service.send_broadcast(args.title, args.body, args.sender)
        else:
            notification_id = service.send_targeted(args.title, args.body, args.users, args.sender)
    except FanoutError as e:
        print(f"Error: {e}", file=sys.stderr)
        runner.shutdown(wait=False)
        return 1

    print(f"Notification {notification_id} recorded; waiting for push dispatch...")
    runner.shutdown(wait=True)
    status = service.dispatch_status(notification_id)
    if isinstance(status, DispatchReport):
        print(json.dumps(status.to_dict(), indent=2))
    else:
        print(f"Dispatch status: {status}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
