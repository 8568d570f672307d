#!/usr/bin/env python3
"""CLI interface for Whale Watch."""

import asyncio
import json
import sys
from typing import Any, Awaitable, Callable, Optional

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from .core.errors import WhaleWatchError
from .jobs.whale_frenzy import WhaleBuy
from .jobs.mint_monitor import SAMPLE_MINT
from .service import WhaleWatchService
from .utils.config import load_config, get_config
from .utils.logger import setup_logger
from .utils.timeutil import to_iso, utc_now


console = Console()


def _run(job: Callable[[WhaleWatchService], Awaitable[Any]]) -> Any:
    """Run ``job`` against a started service, exiting non-zero on failure."""

    async def _main():
        service = WhaleWatchService()
        await service.start()
        try:
            return await job(service)
        finally:
            await service.stop()

    try:
        return asyncio.run(_main())
    except WhaleWatchError as e:
        console.print(f"[red]Error ({e.status_code}): {e.message}[/red]")
        sys.exit(1)


def _print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Path to .env configuration file",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Logging level",
)
def cli(config: Optional[str], log_level: str):
    """Whale Watch - whale frenzies, rejected-token review and mint monitoring."""
    load_config(config)
    setup_logger(log_level=log_level)


@cli.command()
@click.option("--host", default=None, help="Bind host (defaults to API_HOST)")
@click.option("--port", default=None, type=int, help="Bind port (defaults to API_PORT)")
def serve(host: Optional[str], port: Optional[int]):
    """Start the HTTP API with the job scheduler."""
    import uvicorn

    cfg = get_config()
    console.print(Panel.fit(
        "[bold cyan]🐋 Whale Watch[/bold cyan]\n"
        f"[yellow]Serving on {host or cfg.api_host}:{port or cfg.api_port}[/yellow]",
        border_style="cyan"
    ))
    uvicorn.run("webapp.main:app", host=host or cfg.api_host, port=port or cfg.api_port)


# ----------------------------------------------------------------------
# Whale frenzy
# ----------------------------------------------------------------------

@cli.group()
def frenzy():
    """Whale frenzy detection."""


@frenzy.command("check")
@click.argument("user_id")
def frenzy_check(user_id: str):
    """Show tokens currently in a frenzy for USER_ID."""
    result = _run(lambda s: s.frenzy.check_frenzy(user_id))

    frenzies = result["frenzies"]
    if not frenzies:
        console.print(f"[yellow]{result.get('message', 'No active frenzies')}[/yellow]")
        return

    table = Table(title=f"Active Frenzies for {user_id}", show_header=True, header_style="bold cyan")
    table.add_column("Token", style="yellow")
    table.add_column("Whales", style="green", justify="right")
    table.add_column("Wallets", style="white")
    for item in frenzies:
        table.add_row(item["token_mint"], str(item["whale_count"]), "\n".join(item["participating_wallets"]))
    console.print(table)


@frenzy.command("buy")
@click.argument("wallet_address")
@click.argument("token_mint")
@click.option("--amount", type=float, default=None, help="SOL spent")
@click.option("--signature", default=None, help="Transaction signature")
def frenzy_buy(wallet_address: str, token_mint: str, amount: Optional[float], signature: Optional[str]):
    """Feed a whale buy into the detector."""
    buy = WhaleBuy(
        wallet_address=wallet_address,
        token_mint=token_mint,
        amount_sol=amount,
        signature=signature,
    )
    results = _run(lambda s: s.frenzy.process_buy(buy))

    if not results:
        console.print("[yellow]No frenzy triggered[/yellow]")
        return
    for item in results:
        console.print(
            f"[bold red]🔥 Frenzy for {item['user_id']}[/bold red]: "
            f"{item['whale_count']} whales, auto-buy {'✅' if item['auto_buy_executed'] else '—'}"
        )


@frenzy.command("add-whale")
@click.argument("user_id")
@click.argument("wallet_address")
@click.option("--nickname", default=None)
def frenzy_add_whale(user_id: str, wallet_address: str, nickname: Optional[str]):
    """Add WALLET_ADDRESS to USER_ID's whale list."""
    _run(lambda s: s.frenzy.add_whale(user_id, wallet_address, nickname))
    console.print(f"[green]Added whale {wallet_address}[/green]")


@frenzy.command("remove-whale")
@click.argument("user_id")
@click.argument("wallet_address")
def frenzy_remove_whale(user_id: str, wallet_address: str):
    """Deactivate WALLET_ADDRESS on USER_ID's whale list."""
    _run(lambda s: s.frenzy.remove_whale(user_id, wallet_address))
    console.print(f"[green]Removed whale {wallet_address}[/green]")


@frenzy.command("configure")
@click.argument("user_id")
@click.option("--min-whales", type=int, default=None)
@click.option("--window", type=int, default=None, help="Time window in seconds")
@click.option("--cooldown", type=int, default=None, help="Cooldown in seconds")
@click.option("--auto-buy/--no-auto-buy", default=None)
@click.option("--buy-amount", type=float, default=None, help="Auto-buy size in SOL")
@click.option("--slippage-bps", type=int, default=None)
def frenzy_configure(user_id, min_whales, window, cooldown, auto_buy, buy_amount, slippage_bps):
    """Create or update USER_ID's frenzy settings."""
    config = _run(lambda s: s.frenzy.save_config(
        user_id,
        min_whales_for_frenzy=min_whales,
        time_window_seconds=window,
        cooldown_seconds=cooldown,
        auto_buy_enabled=auto_buy,
        buy_amount_sol=buy_amount,
        max_slippage_bps=slippage_bps,
    ))
    _print_json(config)


@frenzy.command("set-wallet")
@click.argument("user_id")
@click.option("--private-key", prompt=True, hide_input=True, help="Base58 secret key used for auto-buys")
@click.option("--rpc-url", default=None, help="RPC endpoint for submitting swaps")
def frenzy_set_wallet(user_id: str, private_key: str, rpc_url: Optional[str]):
    """Store the trading wallet USER_ID's auto-buys sign with."""
    _run(lambda s: s.frenzy.save_trading_wallet(user_id, private_key, rpc_url))
    console.print(f"[green]Trading wallet saved for {user_id}[/green]")


@frenzy.command("events")
@click.argument("user_id")
@click.option("--limit", type=int, default=20)
def frenzy_events(user_id: str, limit: int):
    """List recent frenzy events for USER_ID."""
    events = _run(lambda s: s.frenzy.list_events(user_id, limit))

    table = Table(title="Frenzy Events", show_header=True, header_style="bold cyan")
    table.add_column("Detected", style="white")
    table.add_column("Token", style="yellow")
    table.add_column("Whales", justify="right", style="green")
    table.add_column("Auto-buy", style="white")
    for event in events:
        auto_buy = event.get("auto_buy_signature") or event.get("auto_buy_error") or "-"
        table.add_row(event["detected_at"], event["token_mint"], str(event["whale_count"]), auto_buy)
    console.print(table)


# ----------------------------------------------------------------------
# Rejected tokens
# ----------------------------------------------------------------------

@cli.command()
def review():
    """Run one rejected-token review cycle."""
    stats = _run(lambda s: s.reviewer.review())

    table = Table(title="Rejected Reviewer", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Reviewed", str(stats.tokens_reviewed))
    table.add_row("Resurrected", str(stats.resurrected))
    table.add_row("Permanently rejected", str(stats.permanently_rejected))
    table.add_row("Deleted", str(stats.deleted))
    table.add_row("Errors", str(stats.errors))
    table.add_row("Duration", f"{stats.duration_ms} ms")
    console.print(table)

    for token in stats.resurrected_tokens:
        console.print(f"  🔄 {token}")


@cli.command("review-status")
def review_status():
    """Show soft / permanent / unclassified rejection counts."""
    _print_json(_run(lambda s: s.reviewer.status()))


@cli.command()
@click.option("--batch-size", type=int, default=25)
@click.option("--max-batches", type=int, default=20)
@click.option("--offset", type=int, default=0)
def backcheck(batch_size: int, max_batches: int, offset: int):
    """Backcheck rejected tokens for false positives."""
    _print_json(_run(lambda s: s.backcheck.run(batch_size, max_batches, offset)))


# ----------------------------------------------------------------------
# Mint monitor
# ----------------------------------------------------------------------

@cli.group()
def mint():
    """Spawner-wallet mint monitoring."""


@mint.command("scan")
@click.argument("wallet_address")
@click.option("--max-age-hours", type=float, default=None)
@click.option("--output", "-o", type=click.Path(), help="Output file path (JSON)")
def mint_scan(wallet_address: str, max_age_hours: Optional[float], output: Optional[str]):
    """Scan WALLET_ADDRESS for recently created tokens."""
    result = _run(lambda s: s.mint_monitor.scan_now(wallet_address, max_age_hours))

    table = Table(title=f"Mints for {wallet_address}", show_header=True, header_style="bold cyan")
    table.add_column("Mint", style="yellow")
    table.add_column("Symbol", style="green")
    table.add_column("Name", style="white")
    for item in result["mints"]:
        table.add_row(item["mint"], item.get("symbol") or "-", item.get("name") or "-")
    console.print(table)

    if output:
        with open(output, "w") as f:
            json.dump(result, f, indent=2)
        console.print(f"[green]Results saved to: {output}[/green]")


@mint.command("add")
@click.argument("user_id")
@click.argument("wallet_address")
@click.option("--source-token", default=None)
@click.option("--chat-id", "chat_ids", multiple=True, help="Telegram chat to notify (repeatable)")
def mint_add(user_id: str, wallet_address: str, source_token: Optional[str], chat_ids):
    """Add WALLET_ADDRESS to cron monitoring."""
    result = _run(lambda s: s.mint_monitor.add_to_cron(
        user_id, wallet_address, source_token, list(chat_ids) or None
    ))
    console.print(f"[green]{result['message']}[/green]")


@mint.command("remove")
@click.argument("user_id")
@click.argument("wallet_address")
def mint_remove(user_id: str, wallet_address: str):
    """Remove WALLET_ADDRESS from cron monitoring."""
    result = _run(lambda s: s.mint_monitor.remove_from_cron(user_id, wallet_address))
    console.print(f"[green]{result['message']}[/green]")


@mint.command("run")
def mint_run():
    """Scan every cron-enabled wallet once."""
    result = _run(lambda s: s.mint_monitor.run_cron())
    console.print(
        f"[cyan]Scanned {result['scannedWallets']} wallets, "
        f"{result['newMintsDetected']} new mints, "
        f"{result['notificationsSent']} notifications sent[/cyan]"
    )


@mint.command("list")
@click.argument("user_id")
def mint_list(user_id: str):
    """List USER_ID's monitored wallets and their detections."""
    result = _run(lambda s: s.mint_monitor.get_monitored(user_id))

    table = Table(title="Monitored Wallets", show_header=True, header_style="bold cyan")
    table.add_column("Wallet", style="yellow")
    table.add_column("Cron", style="green")
    table.add_column("Detections", justify="right")
    table.add_column("Last scan", style="white")
    for wallet in result["wallets"]:
        table.add_row(
            wallet["wallet_address"],
            "on" if wallet["is_cron_enabled"] else "off",
            str(len(wallet["detections"])),
            wallet.get("last_scanned_at") or "-",
        )
    console.print(table)


# ----------------------------------------------------------------------
# Misc
# ----------------------------------------------------------------------

@cli.command()
def config():
    """Display current configuration."""
    cfg = get_config()

    table = Table(title="Configuration", show_header=True, header_style="bold cyan")
    table.add_column("Setting", style="yellow")
    table.add_column("Value", style="green")

    table.add_section()
    table.add_row("Database", cfg.database_path)
    table.add_row("RPC URL", cfg.get_rpc_url()[:50] + "..." if len(cfg.get_rpc_url()) > 50 else cfg.get_rpc_url())
    table.add_row("Helius API key", "set" if cfg.helius_api_key else "missing")
    table.add_row("SolanaTracker API key", "set" if cfg.solana_tracker_api_key else "missing")

    table.add_section()
    table.add_row("Frenzy min whales", str(cfg.frenzy_min_whales))
    table.add_row("Frenzy window", f"{cfg.frenzy_time_window_seconds} seconds")
    table.add_row("Frenzy cooldown", f"{cfg.frenzy_cooldown_seconds} seconds")

    table.add_section()
    table.add_row("Scheduler", "Enabled" if cfg.scheduler_enabled else "Disabled")
    table.add_row("Reviewer interval", f"{cfg.reviewer_interval_seconds} seconds")
    table.add_row("Mint cron interval", f"{cfg.mint_cron_interval_seconds} seconds")
    table.add_row(
        "Backcheck interval",
        f"{cfg.backcheck_interval_seconds} seconds" if cfg.backcheck_interval_seconds else "Disabled",
    )

    table.add_section()
    table.add_row("Telegram", "Enabled" if cfg.telegram_enabled else "Disabled")
    table.add_row("Webhook", "Enabled" if cfg.webhook_enabled else "Disabled")

    console.print(table)


@cli.command()
def test_alerts():
    """Send a sample frenzy and mint alert through every enabled channel."""
    console.print("[cyan]Testing alert channels...[/cyan]")

    now = to_iso(utc_now())
    event = {
        "user_id": "test-user",
        "token_mint": SAMPLE_MINT.mint,
        "whale_count": 3,
        "participating_wallets": ["WhaleA111", "WhaleB222", "WhaleC333"],
        "first_buy_at": now,
        "last_buy_at": now,
        "detected_at": now,
        "auto_buy_executed": False,
    }

    async def _test(service: WhaleWatchService):
        sent = await service.dispatcher.frenzy_detected(event)
        sent += await service.dispatcher.mint_detected(
            service.config.telegram_chat_id, ["WhaleA111"], [SAMPLE_MINT]
        )
        return sent

    sent = _run(_test)
    if sent:
        console.print(f"[green]✅ Alert test complete ({sent} deliveries)[/green]")
    else:
        console.print("[red]❌ No alerts delivered; check channel settings[/red]")
        sys.exit(1)


@cli.command()
def version():
    """Display version information."""
    from . import __version__, __author__, __description__

    console.print(Panel.fit(
        f"[bold cyan]Whale Watch[/bold cyan]\n\n"
        f"[yellow]Version:[/yellow] {__version__}\n"
        f"[yellow]Author:[/yellow] {__author__}\n"
        f"[yellow]Description:[/yellow] {__description__}",
        border_style="cyan"
    ))


def main():
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
