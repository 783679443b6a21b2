"""Marketplace database management CLI.

Usage:
    python -m marketplace.manage setup-db   # Create all tables
    python -m marketplace.manage drop-db    # Drop all tables
"""

import argparse
import sys


def setup_database():
    from marketplace.domain import marketplace
    from marketplace.utils.db import setup_db

    print("Initializing marketplace domain...")
    marketplace.init()
    touched = setup_db(marketplace)
    if not touched:
        print("No SQL providers configured; nothing to create.")
    for name in touched:
        print(f"  {name} schema ready.")
    print("Done.")


def drop_database():
    from marketplace.domain import marketplace
    from marketplace.utils.db import drop_db

    print("Initializing marketplace domain...")
    marketplace.init()
    touched = drop_db(marketplace)
    if not touched:
        print("No SQL providers configured; nothing to drop.")
    for name in touched:
        print(f"  {name} schema dropped.")
    print("Done.")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Marketplace database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
