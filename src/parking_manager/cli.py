"""Command-line interface: serve the API, create tables, bootstrap an admin."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
import getpass

from parking_manager.accounts import create_admin
from parking_manager.config import configure_logging
from parking_manager.database import SessionLocal, init_db


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Parking management backend")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")

    sub.add_parser("init-db", help="Create database tables")

    admin = sub.add_parser("create-admin", help="Create or promote a verified admin account")
    admin.add_argument("--name", default="Admin User")
    admin.add_argument("--email", required=True)
    admin.add_argument("--password", help="Prompted for when omitted")

    return parser.parse_args(argv)


def run_create_admin(name: str, email: str, password: str) -> int:
    init_db()
    db = SessionLocal()
    try:
        user = create_admin(db, name=name, email=email.strip().lower(), password=password)
        print(f"Admin ready: id={user.id} email={user.email}")
        return user.id
    finally:
        db.close()


def run(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging()

    if args.command == "init-db":
        init_db()
        print("Database tables created.")
        return

    if args.command == "create-admin":
        password = args.password or getpass.getpass("Admin password: ")
        if len(password) < 6:
            raise SystemExit("Password must be at least 6 characters long")
        run_create_admin(args.name, args.email, password)
        return

    import uvicorn

    host = getattr(args, "host", "0.0.0.0")
    port = getattr(args, "port", 8000)
    uvicorn.run("parking_manager.api:app", host=host, port=port, reload=getattr(args, "reload", False))


if __name__ == "__main__":
    run()
