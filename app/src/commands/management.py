#!/usr/bin/env python3
"""
Management CLI commands for the Daily Issue service.

Usage:
    python -m src.commands.management <command> [args...]

Commands:
    send-daily [subject_id]             - Broadcast today's issue to all subscribers
    send-admin <topic_id> <sequence>    - Send a preview of a topic's issue to ADMIN_EMAIL
    resend <issue_id>                   - Resend a sent issue to users whose delivery failed
    help                                - Show this help message

Examples:
    python -m src.commands.management send-daily
    python -m src.commands.management send-admin 42 42
    python -m src.commands.management resend 17
"""

import asyncio
import sys
import logging

from src.commands.send_daily_newsletter import send_daily_newsletter
from src.core.config import settings
from src.core.database import get_db_session
from src.core.exceptions import NewsletterError
from src.repositories.unit_of_work import SqlAlchemyUnitOfWork
from src.services.newsletter_service import NewsletterService

# Configure logging for CLI
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)


async def main():
    """Main entry point for management commands."""
    if len(sys.argv) < 2:
        print_help()
        sys.exit(1)

    command = sys.argv[1].lower()

    if command == "help" or command == "--help" or command == "-h":
        print_help()
        return

    elif command == "send-daily":
        await handle_send_daily()

    elif command == "send-admin":
        await handle_send_admin()

    elif command == "resend":
        await handle_resend()

    else:
        print(f"Unknown command: {command}")
        print_help()
        sys.exit(1)


def parse_int_arg(index: int, name: str) -> int:
    try:
        return int(sys.argv[index])
    except ValueError:
        print(f"❌ Error: '{sys.argv[index]}' is not a valid {name} (must be an integer)")
        sys.exit(1)


async def handle_send_daily():
    """Handle the send-daily command."""
    subject_id = parse_int_arg(2, "subject ID") if len(sys.argv) > 2 else settings.DEFAULT_SUBJECT_ID
    print(f"🔄 Sending today's newsletter for subject {subject_id}...")

    results = await send_daily_newsletter(subject_id)

    if not results["success"]:
        print(f"❌ Send failed: {results['error']}")
        sys.exit(1)

    print("✅ Send completed!")
    print(f"   Issue: {results['issue_id']} (sequence {results['sequence_number']})")
    print(f"   Sent: {results['total_sent']}")
    print(f"   Failed: {results['total_failed']}")
    print(f"   Duration: {results['duration_seconds']:.2f}s")

    if results["failed_user_ids"]:
        print("⚠️  Failed users:")
        for user_id in results["failed_user_ids"][:5]:  # Show first 5
            print(f"   - {user_id}")
        if len(results["failed_user_ids"]) > 5:
            print(f"   ... and {len(results['failed_user_ids']) - 5} more")


async def handle_send_admin():
    """Handle the send-admin command."""
    if len(sys.argv) < 4:
        print("❌ Error: send-admin requires a topic ID and a sequence number")
        print("Usage: python -m src.commands.management send-admin <topic_id> <sequence>")
        sys.exit(1)

    topic_id = parse_int_arg(2, "topic ID")
    sequence_number = parse_int_arg(3, "sequence number")
    print(f"🔄 Sending preview of topic {topic_id} to {settings.ADMIN_EMAIL}...")

    try:
        async with get_db_session() as db:
            service = NewsletterService(SqlAlchemyUnitOfWork(db))
            result = await service.send_to_admin(topic_id, sequence_number)
    except NewsletterError as e:
        print(f"❌ {e.message}")
        sys.exit(1)

    print(f"✅ Preview sent (message id: {result.message_id})")


async def handle_resend():
    """Handle the resend command."""
    if len(sys.argv) < 3:
        print("❌ Error: resend requires an issue ID")
        print("Usage: python -m src.commands.management resend <issue_id>")
        sys.exit(1)

    issue_id = parse_int_arg(2, "issue ID")
    print(f"🔄 Resending issue {issue_id} to failed users...")

    try:
        async with get_db_session() as db:
            service = NewsletterService(SqlAlchemyUnitOfWork(db))
            result = await service.resend_to_failed_users(issue_id)
    except NewsletterError as e:
        print(f"❌ {e.message}")
        sys.exit(1)

    if result.resend_count == 0:
        print("✅ Nothing to resend")
        return

    print("✅ Resend completed!")
    print(f"   Retried: {result.resend_count}")
    print(f"   Sent: {result.total_sent}")
    print(f"   Failed: {result.total_failed}")


def print_help():
    """Print help message."""
    print(__doc__)


if __name__ == "__main__":
    asyncio.run(main())
