"""
Tests for the billing management CLI.
"""

import asyncio
import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from dibnow.billing.cli import CLIDependencies, cli
from dibnow.billing.models import Base
from dibnow.billing.providers.registry import ProviderRegistry
from dibnow.billing.subscriptions.models import PaymentMethod
from dibnow.billing.wallet.service import WalletService

pytestmark = pytest.mark.unit


@pytest.fixture
def cli_deps(tmp_path):
    # Every command runs its own event loop, so connections must not be pooled
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'cli.sqlite'}", poolclass=NullPool
    )
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def create_tables() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    deps = CLIDependencies(
        session_factory=session_factory,
        create_tables=create_tables,
        registry_factory=ProviderRegistry,
    )
    with patch("dibnow.billing.cli._get_cli_dependencies", return_value=deps):
        yield deps


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestDatabaseCommands:
    def test_init_db_seeds_plans(self, runner, cli_deps):
        result = runner.invoke(cli, ["init-db"])

        assert result.exit_code == 0, result.output
        assert "Seeded plans: FREE TRIAL, BASIC, PREMIUM, GOLD" in result.output
        assert "Database initialized successfully!" in result.output

    def test_init_db_without_seed(self, runner, cli_deps):
        result = runner.invoke(cli, ["init-db", "--no-seed"])
        assert result.exit_code == 0
        assert "Seeded plans" not in result.output

    def test_seed_plans_is_idempotent(self, runner, cli_deps):
        runner.invoke(cli, ["init-db", "--no-seed"])

        first = runner.invoke(cli, ["seed-plans"])
        second = runner.invoke(cli, ["seed-plans"])

        assert "Seeded plans" in first.output
        assert "All default plans already exist." in second.output


class TestRenewalCommands:
    def test_run_renewals_prints_cycle_summary(self, runner, cli_deps):
        runner.invoke(cli, ["init-db"])

        result = runner.invoke(cli, ["run-renewals"])

        assert result.exit_code == 0, result.output
        summary = json.loads(result.stdout)
        assert summary["renewed"] == 0
        assert summary["expired"] == 0

    def test_renewal_report(self, runner, cli_deps):
        runner.invoke(cli, ["init-db"])

        result = runner.invoke(cli, ["renewal-report"])

        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert report["upcoming_renewals"] == 0
        assert report["lapsed_retrying"] == 0


class TestVerifyLedger:
    def test_missing_wallet(self, runner, cli_deps):
        runner.invoke(cli, ["init-db", "--no-seed"])

        result = runner.invoke(cli, ["verify-ledger", "tnt_missing"])

        assert result.exit_code == 1
        assert "Wallet not found for tenant tnt_missing" in result.output

    def test_consistent_wallet(self, runner, cli_deps):
        runner.invoke(cli, ["init-db", "--no-seed"])

        async def top_up() -> None:
            async with cli_deps.session_factory() as session:
                await WalletService(session).top_up(
                    "tnt_1", "12.50", PaymentMethod.STRIPE, currency="GBP"
                )

        asyncio.run(top_up())

        result = runner.invoke(cli, ["verify-ledger", "tnt_1"])

        assert result.exit_code == 0, result.output
        check = json.loads(result.stdout)
        assert check["consistent"] is True
        assert check["balance"] == "12.50"
        assert check["entries"] == 1
