"""CLI for ResumeOps: create tables, inspect audit trails, repair workflows."""

from __future__ import annotations

import argparse
import asyncio
import sys


async def cmd_init_db(args):
    """Create every table in the configured database."""
    from resumeops.db.engine import create_all, engine

    await create_all()
    await engine.dispose()
    print("Database tables created")


async def cmd_audit(args):
    """Print the audit trail of one order, payment or revision."""
    from resumeops.db.engine import async_session_factory, engine
    from resumeops.services import audit

    async with async_session_factory() as db:
        entries = await audit.list_entries(db, args.entity_type, args.entity_id, limit=args.limit, offset=args.offset)
        total = await audit.count_entries(db, args.entity_type, args.entity_id)
    await engine.dispose()

    if not entries:
        print(f"No audit entries for {args.entity_type} {args.entity_id}")
        return
    print(f"{args.entity_type} {args.entity_id}: {total} entries")
    for entry in entries:
        print(f"  #{entry.sequence:<4} {entry.timestamp:%Y-%m-%d %H:%M:%S}  {entry.action:<15} {entry.performed_by:<26}  {entry.details}")


async def cmd_resume_workflows(args):
    """Re-run every workflow saga that has a failed step."""
    from resumeops.db.engine import async_session_factory, engine
    from resumeops.services.coordinator import WorkflowCoordinator

    async with async_session_factory() as db:
        count = await WorkflowCoordinator(db, actor_id=args.actor).resume_failed()
    await engine.dispose()
    print(f"Resumed {count} workflow(s)")


def main():
    from resumeops.config import get_settings
    from resumeops.logging_config import configure_logging

    parser = argparse.ArgumentParser(description="ResumeOps CLI")
    subparsers = parser.add_subparsers(dest="command")

    # init-db
    subparsers.add_parser("init-db", help="Create database tables")

    # audit
    au = subparsers.add_parser("audit", help="Show the audit trail of an entity")
    au.add_argument("entity_type", choices=["order", "payment", "revision"])
    au.add_argument("entity_id")
    au.add_argument("--limit", type=int, default=100)
    au.add_argument("--offset", type=int, default=0)

    # resume-workflows
    rw = subparsers.add_parser("resume-workflows", help="Retry workflow steps that failed")
    rw.add_argument("--actor", default="system", help="Actor id recorded on the retried steps")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(get_settings().log_level)

    if args.command == "init-db":
        asyncio.run(cmd_init_db(args))
    elif args.command == "audit":
        asyncio.run(cmd_audit(args))
    elif args.command == "resume-workflows":
        asyncio.run(cmd_resume_workflows(args))


if __name__ == "__main__":
    main()
