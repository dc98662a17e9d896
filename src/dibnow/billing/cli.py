#!/usr/bin/env python
"""
CLI management commands for the billing service.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import click
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dibnow.billing.catalog.service import PlanCatalog
from dibnow.billing.db import create_all_tables_async, get_session_maker
from dibnow.billing.exceptions import BillingError
from dibnow.billing.logging import setup_logging
from dibnow.billing.notifications.service import DatabaseNotificationSink
from dibnow.billing.providers.registry import ProviderRegistry, build_default_registry
from dibnow.billing.renewals.service import RenewalService
from dibnow.billing.wallet.ledger import LedgerService
from dibnow.billing.wallet.service import WalletService


@dataclass
class CLIDependencies:
    """Bundle of injectable dependencies used by CLI commands."""

    session_factory: async_sessionmaker[AsyncSession]
    create_tables: Callable[[], Awaitable[None]]
    registry_factory: Callable[[], ProviderRegistry]


def _get_cli_dependencies() -> CLIDependencies:
    """Return the default dependency bundle for CLI commands."""
    return CLIDependencies(
        session_factory=get_session_maker(),
        create_tables=create_all_tables_async,
        registry_factory=build_default_registry,
    )


def _echo_json(data: dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
def cli() -> None:
    """DibNow billing management CLI."""
    setup_logging()


@cli.command("init-db")
@click.option("--seed/--no-seed", default=True, help="Also insert the default plans")
def init_db(seed: bool) -> None:
    """Create the billing tables."""
    deps = _get_cli_dependencies()

    async def _init() -> list[str]:
        await deps.create_tables()
        if not seed:
            return []
        async with deps.session_factory() as session:
            created = await PlanCatalog(session).seed_defaults()
            await session.commit()
            return [plan.name for plan in created]

    click.echo("Creating billing tables...")
    created = asyncio.run(_init())
    if created:
        click.echo(f"Seeded plans: {', '.join(created)}")
    click.echo("Database initialized successfully!")


@cli.command("seed-plans")
def seed_plans() -> None:
    """Insert the default plans that are missing."""
    deps = _get_cli_dependencies()

    async def _seed() -> list[str]:
        async with deps.session_factory() as session:
            created = await PlanCatalog(session).seed_defaults()
            await session.commit()
            return [plan.name for plan in created]

    created = asyncio.run(_seed())
    if created:
        click.echo(f"Seeded plans: {', '.join(created)}")
    else:
        click.echo("All default plans already exist.")


@cli.command("run-renewals")
def run_renewals() -> None:
    """Run one renewal cycle now."""
    deps = _get_cli_dependencies()

    async def _run() -> dict[str, Any]:
        providers = deps.registry_factory()
        service = RenewalService(
            deps.session_factory,
            providers,
            notifier=DatabaseNotificationSink(deps.session_factory),
        )
        try:
            report = await service.run_cycle()
        finally:
            await providers.aclose()
        return report.to_dict()

    _echo_json(asyncio.run(_run()))


@cli.command("renewal-report")
def renewal_report() -> None:
    """Show upcoming renewals and the last 24 hours of outcomes."""
    deps = _get_cli_dependencies()

    async def _report() -> dict[str, Any]:
        async with deps.session_factory() as session:
            report = await LedgerService(session).renewal_report()
            return report.to_dict()

    _echo_json(asyncio.run(_report()))


@cli.command("verify-ledger")
@click.argument("tenant_id")
def verify_ledger(tenant_id: str) -> None:
    """Check that TENANT_ID's wallet balance equals the sum of its ledger."""
    deps = _get_cli_dependencies()

    async def _verify() -> dict[str, Any]:
        async with deps.session_factory() as session:
            check = await WalletService(session).verify_ledger(tenant_id)
        return {
            "tenant_id": check.tenant_id,
            "balance": check.balance,
            "ledger_sum": check.ledger_sum,
            "entries": check.entries,
            "consistent": check.consistent,
        }

    try:
        result = asyncio.run(_verify())
    except BillingError as e:
        raise click.ClickException(e.message) from e
    _echo_json(result)
    if not result["consistent"]:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
