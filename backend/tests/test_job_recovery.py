"""Tests for the recover_jobs CLI command."""

import pytest

from sakuga.cli.recover_jobs import async_main, parse_args
from sakuga.models.job import JobStatus, QueueJob


@pytest.fixture(autouse=True)
def keep_default_logging(monkeypatch):
    # Cached loggers would keep writing to capsys streams closed after the test
    monkeypatch.setattr("sakuga.cli.recover_jobs.configure_logging", lambda settings: None)


async def seed(uow_factory):
    async with await uow_factory() as uow:
        stuck = await uow.jobs.enqueue(QueueJob(prompt="stuck", provider="mock"))
        await uow.jobs.update_status(stuck.id, JobStatus.PROCESSING)
        pending = await uow.jobs.enqueue(QueueJob(prompt="waiting", provider="mock"))
    return stuck, pending


def test_parse_args_defaults():
    args = parse_args([])

    assert args.dry_run is False
    assert args.verbose is False


@pytest.mark.asyncio
async def test_recovery_resets_processing_jobs(settings, uow_factory, capsys):
    stuck, pending = await seed(uow_factory)

    exit_code = await async_main([], settings=settings)

    assert exit_code == 0
    async with await uow_factory() as uow:
        assert (await uow.jobs.get_by_id(stuck.id)).status == JobStatus.PENDING
        assert (await uow.jobs.get_by_id(pending.id)).status == JobStatus.PENDING

    output = capsys.readouterr().out
    assert "Jobs stuck in processing: 1" in output
    assert "Jobs reset to pending: 1" in output
    assert "pending=2" in output


@pytest.mark.asyncio
async def test_dry_run_changes_nothing(settings, uow_factory, capsys):
    stuck, _ = await seed(uow_factory)

    exit_code = await async_main(["--dry-run"], settings=settings)

    assert exit_code == 0
    async with await uow_factory() as uow:
        assert (await uow.jobs.get_by_id(stuck.id)).status == JobStatus.PROCESSING

    output = capsys.readouterr().out
    assert f"  - {stuck.id} (mock, retries: 0)" in output
    assert "Jobs reset to pending: 0" in output
    assert "[DRY RUN]" in output


@pytest.mark.asyncio
async def test_empty_queue(settings, engine, capsys):
    exit_code = await async_main(["-v"], settings=settings)

    assert exit_code == 0
    assert "Jobs stuck in processing: 0" in capsys.readouterr().out
