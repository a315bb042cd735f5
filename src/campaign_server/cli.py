"""
Command-line interface for the campaign server.

Provides CLI commands for server management:
- init-db: Initialize the database schema and seed data
- create-admin: Create an admin account interactively or via environment variables
- run: Start the API server

Usage:
    campaign-server init-db
    campaign-server create-admin
    campaign-server run [--port PORT] [--host HOST]

Environment Variables:
    CAMPAIGN_ADMIN_EMAIL: Email for the admin (used by init-db and create-admin)
    CAMPAIGN_ADMIN_PASSWORD: Password for the admin
    CAMPAIGN_HOST: Host to bind the API server (default: 0.0.0.0)
    CAMPAIGN_PORT: Port for the API server (default: 8000)
"""

import argparse
import getpass
import logging
import os
import sys

logger = logging.getLogger(__name__)


def get_admin_credentials_from_env() -> tuple[str, str] | None:
    """
    Get admin credentials from environment variables.

    Returns:
        Tuple of (email, password) if both CAMPAIGN_ADMIN_EMAIL and
        CAMPAIGN_ADMIN_PASSWORD are set. None if either is missing.
    """
    email = os.environ.get("CAMPAIGN_ADMIN_EMAIL")
    password = os.environ.get("CAMPAIGN_ADMIN_PASSWORD")
    if email and password:
        return email, password
    return None


def prompt_for_credentials() -> tuple[str, str]:
    """
    Interactively prompt for admin credentials with password policy enforcement.

    The configured ``[auth] password_policy`` level applies; its requirements
    are printed before the password prompt.

    Returns:
        Tuple of (email, password) that meet the requirements.
    """
    from campaign_server.api.password_policy import (
        get_password_requirements,
        validate_password_strength,
    )

    print("\n" + "=" * 60)
    print("CREATE ADMIN")
    print("=" * 60)

    while True:
        email = input("Email: ").strip()
        if "@" not in email:
            print("Please enter a valid email address.")
            continue
        break

    print("\n" + get_password_requirements())
    print()

    while True:
        password = getpass.getpass("Password: ")
        result = validate_password_strength(password)
        if not result.is_valid:
            print("\nPassword does not meet requirements:")
            for error in result.errors:
                print(f"  - {error}")
            print()
            continue

        password_confirm = getpass.getpass("Confirm password: ")
        if password != password_confirm:
            print("Passwords do not match. Try again.\n")
            continue
        break

    return email, password


def cmd_init_db(args: argparse.Namespace) -> int:
    """
    Initialize the database schema and load the bundled seed data.

    If CAMPAIGN_ADMIN_EMAIL and CAMPAIGN_ADMIN_PASSWORD are set and no users
    exist yet, an admin is created as well.

    Returns:
        0 on success, 1 on error
    """
    from campaign_server.db.errors import DatabaseError
    from campaign_server.db.schema import init_database

    try:
        init_database()
    except (DatabaseError, OSError) as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1
    print("Database initialized successfully.")
    return 0


def cmd_create_admin(args: argparse.Namespace) -> int:
    """
    Create an admin account.

    Environment credentials win; otherwise the user is prompted when stdin
    is a terminal.

    Returns:
        0 on success, 1 on error
    """
    from campaign_server.api.password_policy import validate_password_strength
    from campaign_server.db import users_repo
    from campaign_server.db.connection import connection_scope
    from campaign_server.db.errors import DatabaseError
    from campaign_server.db.schema import init_database

    init_database(skip_admin=True)

    env_creds = get_admin_credentials_from_env()
    if env_creds:
        email, password = env_creds
        print(f"Using credentials from environment variables for '{email}'")
    else:
        if not sys.stdin.isatty():
            print(
                "Error: No credentials provided.\n"
                "Set CAMPAIGN_ADMIN_EMAIL and CAMPAIGN_ADMIN_PASSWORD environment variables,\n"
                "or run interactively to be prompted for credentials.",
                file=sys.stderr,
            )
            return 1
        email, password = prompt_for_credentials()

    # Environment credentials skip the interactive checks.
    result = validate_password_strength(password)
    if not result.is_valid:
        print("Error: Password does not meet security requirements:", file=sys.stderr)
        for error in result.errors:
            print(f"  - {error}", file=sys.stderr)
        return 1

    try:
        with connection_scope(write=True) as conn:
            if users_repo.get_user_by_email(conn, email) is not None:
                print(f"Error: User '{email}' already exists.", file=sys.stderr)
                return 1
            users_repo.create_user(conn, email, password, name="Administrator", role="ADMIN")
    except DatabaseError as e:
        print(f"Error creating admin: {e}", file=sys.stderr)
        return 1

    print(f"\nAdmin '{email}' created successfully.")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run the API server with uvicorn.

    Initializes the database first when the file does not exist yet.
    CLI arguments override ``[server]`` settings and CAMPAIGN_HOST/CAMPAIGN_PORT.

    Returns:
        0 on clean shutdown, 1 on error during startup
    """
    import uvicorn

    from campaign_server.config import config, configure_logging
    from campaign_server.db.schema import init_database

    configure_logging()

    if not config.database.absolute_path.exists():
        print("Database not found. Initializing...")
        init_database()

    host = args.host or config.server.host
    port = args.port or config.server.port
    logger.info("Starting campaign server on %s:%s", host, port)

    try:
        uvicorn.run("campaign_server.api.server:app", host=host, port=port)
    except KeyboardInterrupt:
        print("\nShutting down...")
    except OSError as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        return 1
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="campaign-server",
        description="Campaign Server - worlds, campaigns and characters for tabletop RPGs",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser(
        "init-db",
        help="Initialize the database schema",
        description=(
            "Create the database tables and load seed data. "
            "If CAMPAIGN_ADMIN_EMAIL and CAMPAIGN_ADMIN_PASSWORD are set, creates an admin."
        ),
    )
    init_parser.set_defaults(func=cmd_init_db)

    admin_parser = subparsers.add_parser(
        "create-admin",
        help="Create an admin account",
        description=(
            "Create an admin account. Uses CAMPAIGN_ADMIN_EMAIL and CAMPAIGN_ADMIN_PASSWORD "
            "environment variables if set, otherwise prompts interactively."
        ),
    )
    admin_parser.set_defaults(func=cmd_create_admin)

    run_parser = subparsers.add_parser("run", help="Run the API server")
    run_parser.add_argument(
        "--port",
        "-p",
        type=int,
        help="API server port (default: 8000, or CAMPAIGN_PORT env var)",
    )
    run_parser.add_argument(
        "--host",
        type=str,
        help="Host to bind the server to (default: 0.0.0.0, or CAMPAIGN_HOST env var)",
    )
    run_parser.set_defaults(func=cmd_run)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
