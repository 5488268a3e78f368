"""CLI command for resetting queue jobs stuck in 'processing'.

A job stays in 'processing' when the server stops mid-generation. The server
resets such jobs on startup; this command does the same while it is stopped.

Usage:
    python -m sakuga.cli.recover_jobs [OPTIONS]

Examples:
    # Reset stuck jobs to pending
    python -m sakuga.cli.recover_jobs

    # Only list stuck jobs
    python -m sakuga.cli.recover_jobs --dry-run

    # Verbose logging
    python -m sakuga.cli.recover_jobs -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog
from sqlalchemy.exc import SQLAlchemyError

from sakuga.core.config import Settings, configure_logging
from sakuga.core.database import create_engine, create_schema, setup_db_session
from sakuga.models.job import JobStatus
from sakuga.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Reset queue jobs stuck in 'processing' back to 'pending'",
        epilog="Run while the server is stopped; the server does this itself on startup",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List stuck jobs without database writes",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args(argv)

    settings = settings or Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    logger.info("cli.started", dry_run=args.dry_run)

    engine = create_engine(settings.database_url, settings.db_pool_size)
    try:
        await create_schema(engine)
        uow_factory = create_uow_factory(setup_db_session(engine))

        async with await uow_factory() as uow:
            stuck = await uow.jobs.list_all(status=JobStatus.PROCESSING)
            reset = 0 if args.dry_run else await uow.jobs.reset_processing()
            counts = await uow.jobs.count_by_status()

        print("\n" + "=" * 60)
        print("Queue Recovery Summary")
        print("=" * 60)
        print(f"Jobs stuck in processing: {len(stuck)}")
        for job in stuck[:10]:
            print(f"  - {job.id} ({job.provider}, retries: {job.retry_count})")
        if len(stuck) > 10:
            print(f"  ... and {len(stuck) - 10} more")
        print(f"Jobs reset to pending: {reset}")
        print("Queue now: " + ", ".join(f"{status}={n}" for status, n in counts.items()))

        if args.dry_run:
            print("\n[DRY RUN] No changes were persisted to database")
        print("=" * 60 + "\n")

        logger.info("cli.finished", stuck=len(stuck), reset=reset)
        return 0

    except SQLAlchemyError as e:
        logger.error(
            "cli.database_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    finally:
        await engine.dispose()


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
