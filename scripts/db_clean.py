#!/usr/bin/env python
"""Database cleanup script for the conversation token cache.

Usage:
    python scripts/db_clean.py [--config PATH] [--all] [--dry-run]
"""

import argparse
import sys
from pathlib import Path

from sqlalchemy import delete, func, select

sys.path.insert(0, str(Path(__file__).parent.parent))

from duckchat_proxy.config_loader import load_config, load_settings  # noqa: E402
from duckchat_proxy.conversation.stores import DatabaseKeyValueStore  # noqa: E402
from duckchat_proxy.database.factory import create_database  # noqa: E402
from duckchat_proxy.database.models import ConversationToken  # noqa: E402
from duckchat_proxy.database.models.base import utcnow  # noqa: E402


def parse_args():
    parser = argparse.ArgumentParser(
        description="Clean cached conversation tokens from the database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Remove expired tokens:
        python scripts/db_clean.py

    Remove every cached token:
        python scripts/db_clean.py --all

    Show what would be removed:
        python scripts/db_clean.py --all --dry-run
        """,
    )
    parser.add_argument(
        "--config",
        help="Config file to read the database settings from (default: DUCKCHAT_CONFIG)",
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="Remove all tokens, not only expired ones",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without actually deleting",
    )
    return parser.parse_args()


def count_tokens(database, expired_only: bool) -> int:
    with database.session() as sess:
        query = select(func.count()).select_from(ConversationToken)
        if expired_only:
            query = query.where(ConversationToken.expires_at <= utcnow())
        return sess.execute(query).scalar() or 0


def clean_database(args) -> None:
    settings = load_settings(load_config(args.config))
    if settings.cache.backend != "database":
        print("conversation_cache.backend is not 'database'")
        print("No cleanup needed")
        return

    database = create_database(settings.cache.database)
    try:
        database.initialize()
        count = count_tokens(database, expired_only=not args.all)
        label = "cached" if args.all else "expired"
        print(f"Found {count} {label} conversation tokens")

        if args.dry_run:
            print("Dry run completed - no changes made")
            return
        if count == 0:
            return

        if args.all:
            with database.session() as sess:
                sess.execute(delete(ConversationToken))
            print(f"Removed {count} conversation tokens")
        else:
            removed = DatabaseKeyValueStore(database).purge_expired()
            print(f"Removed {removed} expired conversation tokens")
    finally:
        database.close()


def main() -> None:
    clean_database(parse_args())


if __name__ == "__main__":
    main()
