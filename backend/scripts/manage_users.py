"""CLI script to manage user accounts in the backend DB.

Usage:
    python scripts/manage_users.py create EMAIL PASSWORD [--name NAME]
    python scripts/manage_users.py set-password EMAIL PASSWORD
    python scripts/manage_users.py deactivate EMAIL
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `colang` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from colang import credentials, repositories, services
from colang.config import get_settings
from colang.credentials import AuthError
from colang.database import build_engine, create_db_and_tables


def main(argv=None) -> int:
    """Run one account command against the configured database.

    Results are printed to stdout; the exit code is 1 when the command
    fails (unknown user, invalid password, taken email).
    """
    parser = argparse.ArgumentParser(description="Manage Colang user accounts")
    sub = parser.add_subparsers(dest="command", required=True)
    create = sub.add_parser("create", help="create a user with a password")
    create.add_argument("email")
    create.add_argument("password")
    create.add_argument("--name", default="")
    set_pw = sub.add_parser("set-password", help="replace a user's password")
    set_pw.add_argument("email")
    set_pw.add_argument("password")
    deactivate = sub.add_parser("deactivate", help="deactivate a user account")
    deactivate.add_argument("email")
    args = parser.parse_args(argv)

    settings = get_settings()
    engine = build_engine(settings.DATABASE_URL)
    create_db_and_tables(engine)
    with Session(engine) as session:
        repo = repositories.UserRepository(session)
        try:
            if args.command == "create":
                user, _ = services.AuthService(session, settings).register(args.name, args.email, args.password)
                print(f"Created user {user.id} <{user.email}>")
                return 0
            user = repo.get_by_email(services.normalize_email(args.email))
            if not user:
                print(f"No user with email {args.email}")
                return 1
            if args.command == "set-password":
                if len(args.password) < services.MIN_PASSWORD_LENGTH:
                    print(f"Password must be at least {services.MIN_PASSWORD_LENGTH} characters")
                    return 1
                repo.set_password(user.id, credentials.hash_password(args.password))
                print(f"Password updated for user {user.id}")
            else:
                repo.deactivate(user.id, credentials.utc_now())
                print(f"Deactivated user {user.id}")
        except AuthError as e:
            print(f"Error: {e.detail}")
            return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
