"""
Carbon AVS CLI

Commands for verifying credits, inspecting registry answers, and running
the API server or the contract listener
"""
import asyncio

import click
import httpx
import uvicorn
from rich.console import Console
from rich.table import Table

from carbon_avs.config import get_config
from carbon_avs.ledger.contract import HookContract
from carbon_avs.listener import ContractRequestListener
from carbon_avs.registries.models import Failure, NotFound, Success
from carbon_avs.service import build_coordinator, build_mapper, build_registry_clients
from carbon_avs.utils import CarbonAVSError, PublishFailure, get_logger, setup_logging

console = Console()
logger = get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════
# MAIN CLI GROUP
# ═══════════════════════════════════════════════════════════════════

@click.group()
@click.version_option(version='0.1.0')
@click.option('--log-level', default=None, help='Override CARBON_AVS_LOG_LEVEL')
def main(log_level):
    """
    Carbon AVS - cross-registry carbon credit verification
    """
    config = get_config()
    setup_logging(log_level or config.log_level, config.log_file)


# ═══════════════════════════════════════════════════════════════════
# VERIFICATION COMMANDS
# ═══════════════════════════════════════════════════════════════════

@main.command()
@click.argument('credit_ids', nargs=-1, required=True)
@click.option('--requester', default='cli', show_default=True, help='Requester identity')
@click.option('--force', is_flag=True, help='Re-verify credits that already have a verdict')
def verify(credit_ids, requester, force):
    """Verify one or more credits and print the verdicts"""
    try:
        coordinator = build_coordinator(get_config())
    except CarbonAVSError as e:
        console.print(f"\n[red]✗ Error: {e}[/red]")
        raise SystemExit(1)

    async def _run():
        return await asyncio.gather(
            *(coordinator.request_verification(cid, requester, force=force) for cid in credit_ids),
            return_exceptions=True,
        )

    with console.status("[bold green]Querying registries..."):
        results = asyncio.run(_run())

    table = Table(title="Verification Results")
    table.add_column("Credit", style="cyan")
    table.add_column("Status", style="magenta")
    table.add_column("Valid")
    table.add_column("Score", justify="right")
    table.add_column("Sources")

    failed = False
    for credit_id, result in zip(credit_ids, results):
        if isinstance(result, PublishFailure):
            failed = True
            table.add_row(credit_id, "publish_failed", "-", "-", f"[red]{result.reason}[/red]")
            continue
        if isinstance(result, BaseException):
            raise result
        verdict = result.verdict
        table.add_row(
            credit_id,
            result.status.value,
            "[green]yes[/green]" if verdict and verdict.is_valid else "[red]no[/red]",
            str(verdict.quality_score) if verdict else "-",
            ", ".join(verdict.sources) if verdict else "",
        )

    console.print(table)
    if failed:
        raise SystemExit(1)


@main.command()
@click.argument('credit_id')
def registries(credit_id):
    """Show what each registry reports for a credit"""
    config = get_config()
    clients = build_registry_clients(config, build_mapper(config))

    async def _run():
        return await asyncio.gather(*(client.query(credit_id) for client in clients))

    with console.status("[bold green]Querying registries..."):
        outcomes = asyncio.run(_run())

    table = Table(title=f"Registry Records for Credit {credit_id}")
    table.add_column("Registry", style="cyan")
    table.add_column("Outcome", style="magenta")
    table.add_column("Quality", justify="right")
    table.add_column("Retired")
    table.add_column("Details")

    for outcome in outcomes:
        if isinstance(outcome, Success):
            record = outcome.record
            details = ", ".join(
                str(v) for v in (record.vintage, record.project_type, record.methodology, record.location) if v
            )
            table.add_row(
                record.source.value, "found", f"{record.quality:g}",
                "yes" if record.retired else "no", details,
            )
        elif isinstance(outcome, NotFound):
            table.add_row(outcome.source.value, "not found", "-", "-", outcome.reason)
        elif isinstance(outcome, Failure):
            table.add_row(outcome.source.value, f"[red]{outcome.kind.value}[/red]", "-", "-", outcome.reason)

    console.print(table)


@main.command()
@click.argument('credit_id')
@click.option('--url', default=None, help='API base URL (default: http://localhost:CARBON_AVS_API_PORT)')
def status(credit_id, url):
    """Show a credit's verification state from a running API server"""
    config = get_config()
    base_url = (url or f"http://localhost:{config.api_port}").rstrip("/")
    headers = {"Authorization": f"Bearer {config.api_key}"} if config.api_key else {}

    try:
        resp = httpx.get(f"{base_url}/api/verifications/{credit_id}", headers=headers, timeout=10.0)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"\n[red]✗ Error: {e}[/red]")
        raise SystemExit(1)

    data = resp.json()
    verdict = data.get("verdict") or {}
    table = Table(title=f"Credit {data['credit_id']}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Status", data["status"])
    table.add_row("Valid", str(verdict.get("is_valid", "-")))
    table.add_row("Quality score", str(verdict.get("quality_score", "-")))
    table.add_row("Sources", ", ".join(verdict.get("sources", [])))
    table.add_row("Waves", str(data.get("wave_count", 0)))
    if data.get("last_error"):
        table.add_row("Last error", f"[red]{data['last_error']}[/red]")
    console.print(table)


# ═══════════════════════════════════════════════════════════════════
# SERVICE COMMANDS
# ═══════════════════════════════════════════════════════════════════

@main.command()
@click.option('--host', default=None, help='Bind address (default: CARBON_AVS_API_HOST)')
@click.option('--port', default=None, type=int, help='Port (default: CARBON_AVS_API_PORT)')
def serve(host, port):
    """Run the verification API server"""
    config = get_config()
    uvicorn.run(
        "carbon_avs.api.main:app",
        host=host or config.api_host,
        port=port or config.api_port,
        log_level=config.log_level.lower(),
    )


@main.command()
def listen():
    """Verify credits requested by the hook contract"""
    config = get_config()
    if not config.hook_contract_address:
        console.print("\n[red]✗ Error: CARBON_AVS_HOOK_CONTRACT_ADDRESS is not set[/red]")
        raise SystemExit(1)

    contract = HookContract.from_rpc(
        config.rpc_url, config.hook_contract_address, config.private_key, config.receipt_timeout,
    )
    coordinator = build_coordinator(config, sink=contract)
    listener = ContractRequestListener(
        contract,
        coordinator,
        poll_interval=config.listener_poll_interval,
        start_block=config.listener_start_block,
    )

    console.print(f"\n[bold blue]Contract:[/bold blue] {contract.address}")
    if contract.account is not None:
        console.print(f"[bold blue]Operator:[/bold blue] {contract.account.address}")

    async def _run():
        try:
            await listener.run()
        finally:
            await coordinator.shutdown()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Listener stopped[/yellow]")


if __name__ == '__main__':
    main()
