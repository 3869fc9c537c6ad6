"""Tests for scheduled jobs and the command line interface."""
from __future__ import annotations

from datetime import timedelta

import pytest
from typer.testing import CliRunner

import cli
from core.models import ActionTaken, ConversationState, RenewalConversation
from scheduler import jobs, runner
from services.engine import set_engine

from conftest import OWNER_PHONE


@pytest.fixture
def patched_factory(session_factory, monkeypatch):
    monkeypatch.setattr(jobs, "get_session_factory", lambda: session_factory)
    return session_factory


class TestSweepJob:
    def test_times_out_expired_conversations(
        self, patched_factory, db_session, session_local, make_listing, make_conversation, now
    ):
        expired = make_conversation(make_listing(), expires_at=now - timedelta(hours=1))
        live = make_conversation(make_listing())
        db_session.commit()

        result = jobs.run_sweep_job(now=now)

        assert result["success"] is True
        assert result["job_type"] == "sweep"
        assert result["result"]["updated_count"] == 1
        with session_local() as session:
            assert session.get(RenewalConversation, expired.id).state == ConversationState.TIMEOUT.value
            assert session.get(RenewalConversation, expired.id).action_taken == ActionTaken.TIMEOUT.value
            assert session.get(RenewalConversation, live.id).state == ConversationState.AWAITING_AVAILABILITY.value

    def test_failure_is_reported(self, monkeypatch):
        def broken_sweep(**kwargs):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(jobs, "run_sweep", broken_sweep)

        result = jobs.run_sweep_job()

        assert result["success"] is False
        assert "database unavailable" in result["error"]


class TestLeaseCleanupJob:
    def test_noop_for_memory_backend(self, settings, monkeypatch):
        memory = settings.model_copy(update={"phone_lock_backend": "memory"})
        monkeypatch.setattr(jobs, "get_settings", lambda: memory)

        result = jobs.run_lease_cleanup_job()

        assert result["success"] is True
        assert result["result"] == {"removed": 0}


class TestScheduler:
    def test_registers_sweep_job(self, settings, monkeypatch):
        configured = settings.model_copy(update={"phone_lock_backend": "database", "sweep_interval_minutes": 5})
        monkeypatch.setattr(runner, "get_settings", lambda: configured)

        scheduler = runner.build_scheduler()

        job_ids = {job.id for job in scheduler.get_jobs()}
        assert job_ids == {runner.SWEEP_JOB_ID, runner.LEASE_CLEANUP_JOB_ID}
        sweep = scheduler.get_job(runner.SWEEP_JOB_ID)
        assert sweep.trigger.interval == timedelta(minutes=5)

    def test_memory_backend_has_no_lease_job(self, settings, monkeypatch):
        configured = settings.model_copy(update={"phone_lock_backend": "memory"})
        monkeypatch.setattr(runner, "get_settings", lambda: configured)

        job_ids = {job.id for job in runner.build_scheduler().get_jobs()}

        assert job_ids == {runner.SWEEP_JOB_ID}


class TestCli:
    @pytest.fixture
    def cli_runner(self) -> CliRunner:
        return CliRunner()

    def test_simulate_runs_engine(self, cli_runner, sms_engine, transport, db_session, make_listing, make_conversation):
        make_conversation(make_listing())
        db_session.commit()
        set_engine(sms_engine)
        try:
            result = cli_runner.invoke(cli.app, ["simulate", OWNER_PHONE, "YES", "--message-sid", "SMcli1"])
        finally:
            set_engine(None)

        assert result.exit_code == 0
        assert '"outcome": "transitioned"' in result.stdout
        assert f'"action": "{ActionTaken.EXTENDED.value}"' in result.stdout
        assert len(transport.sent) == 1

    def test_sweep_command(self, cli_runner, patched_factory):
        result = cli_runner.invoke(cli.app, ["sweep"])

        assert result.exit_code == 0
        assert "Timed out 0 conversations" in result.stdout

    def test_info(self, cli_runner):
        result = cli_runner.invoke(cli.app, ["info"])

        assert result.exit_code == 0
        assert "Renewal Window: 14 days" in result.stdout
