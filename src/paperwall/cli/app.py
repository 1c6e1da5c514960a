"""CLI for Paperwall - manage the agent wallet and pay for content from the terminal."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from paperwall.config import (
    CONFIG_FILENAME,
    BudgetConfig,
    PaperwallConfig,
    get_config_dir,
    load_config,
    save_config,
)
from paperwall.errors import BudgetExceededError, PaperwallError, PaymentDeclinedError
from paperwall.networks import get_network, list_networks
from paperwall.payments.budget import remaining, utc_day_start
from paperwall.payments.receipts import smallest_to_usdc
from paperwall.payments.signer import PaymentTerms, SignerDomain
from paperwall.storage.database import ReceiptStore, get_database
from paperwall.storage.models import ReceiptStage
from paperwall.wallet.keystore import load_wallet
from paperwall.wallet.manager import WalletManager
from paperwall.wallet.modes import EncryptionModeName
from paperwall.wallet.session import get_session_cache

app = typer.Typer(
    name="paperwall",
    help="Agent wallet for paying publishers with signed USDC authorizations.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

_home_override: Path | None = None


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        console.print(f"paperwall {version('paperwall')}")
        raise typer.Exit()


@app.callback()
def main(
    home: Path = typer.Option(
        None,
        "--home",
        help="Paperwall home directory (default ~/.paperwall)",
        envvar="PAPERWALL_HOME",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to stderr at INFO level"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Agent wallet for paying publishers with signed USDC authorizations."""
    global _home_override
    _home_override = home

    config = _load_config()
    level = logging.INFO if verbose else getattr(logging, config.log_level, logging.WARNING)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    get_session_cache().register_exit_handler()


def _run(coro):
    """Run an async function synchronously."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            import concurrent.futures
            with concurrent.futures.ThreadPoolExecutor() as pool:
                return pool.submit(asyncio.run, coro).result()
        return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


def _config_dir() -> Path:
    if _home_override is not None:
        _home_override.mkdir(mode=0o700, parents=True, exist_ok=True)
        return _home_override
    return get_config_dir()


def _config_path() -> Path:
    return _config_dir() / CONFIG_FILENAME


def _load_config() -> PaperwallConfig:
    if _home_override is not None:
        return load_config(_home_override / CONFIG_FILENAME)
    return load_config()


def _manager(receipts: ReceiptStore | None = None) -> WalletManager:
    return WalletManager(_config_dir(), config=_load_config(), receipts=receipts)


def _fail(message: str) -> None:
    err_console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def _prompt_password(address: str) -> str:
    return console.input(f"[bold]Wallet password for {address}: [/bold]", password=True)


def _new_password() -> str:
    password = console.input("[bold]Set wallet password: [/bold]", password=True)
    confirm = console.input("[bold]Confirm password: [/bold]", password=True)
    if password != confirm:
        _fail("Passwords do not match.")
    return password


def _parse_mode(mode: str | None) -> EncryptionModeName | None:
    if mode is None:
        return None
    try:
        return EncryptionModeName(mode)
    except ValueError:
        valid = ", ".join(m.value for m in EncryptionModeName)
        _fail(f"Unknown encryption mode: {mode}. Valid modes: {valid}")


def _mode_input(mode: EncryptionModeName | None) -> str | None:
    effective = mode or _load_config().default_mode
    if effective is EncryptionModeName.PASSWORD:
        return _new_password()
    return None


def _domain_for(network: str, name: str, version: str, contract: str | None) -> SignerDomain:
    verifying_contract = contract or get_network(network).usdc_address
    return SignerDomain(name=name, version=version, verifying_contract=verifying_contract)


_BUDGET_LABELS = {
    "per_request": "per-request limit",
    "daily": "daily limit",
    "total": "total limit",
    "max_price": "--max-price",
}


def _budget_message(e: BudgetExceededError) -> str:
    if e.reason == "no_budget":
        return "No budget configured. Run 'paperwall budget set' or pass --max-price."
    message = f"Payment refused: exceeds {_BUDGET_LABELS.get(e.reason, e.reason)}"
    if e.limit is not None:
        message += f" of {smallest_to_usdc(e.limit)} USDC"
    if e.spent is not None:
        message += f" ({smallest_to_usdc(e.spent)} USDC already spent)"
    return message


def _print_wallet_panel(title: str, info) -> None:
    console.print(Panel(
        f"[bold green]{title}[/bold green]\n\n"
        f"Address:    [cyan]{info.address}[/cyan]\n"
        f"Network:    {info.network}\n"
        f"Encryption: {info.encryption_mode.value}\n"
        f"Stored at:  [dim]{info.storage_path}[/dim]",
        title="Paperwall Wallet",
    ))


# ------------------------------------------------------------------
# wallet sub-commands
# ------------------------------------------------------------------

wallet_app = typer.Typer(
    name="wallet",
    help="Manage the agent wallet.",
    no_args_is_help=True,
)
app.add_typer(wallet_app, name="wallet")

_MODE_HELP = "Encryption mode: machine-bound, password or env-injected"


@wallet_app.command("create")
def wallet_create(
    mode: str = typer.Option(None, "--mode", "-m", help=_MODE_HELP),
    network: str = typer.Option(None, "--network", "-n", help="CAIP-2 network id"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing wallet"),
):
    """Generate a new wallet and store its key encrypted."""
    mode_name = _parse_mode(mode)
    secret = _mode_input(mode_name)
    try:
        info = _manager().create(mode=mode_name, mode_input=secret, network=network, force=force)
    except PaperwallError as e:
        _fail(str(e))
    _print_wallet_panel("Wallet created!", info)


@wallet_app.command("import")
def wallet_import(
    key: str = typer.Option(
        None, "--key", "-k", help="Private key (64 hex, optional 0x); prompted if omitted"
    ),
    mode: str = typer.Option(None, "--mode", "-m", help=_MODE_HELP),
    network: str = typer.Option(None, "--network", "-n", help="CAIP-2 network id"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing wallet"),
):
    """Import an existing private key."""
    if key is None:
        key = console.input("[bold]Private key: [/bold]", password=True)
    mode_name = _parse_mode(mode)
    secret = _mode_input(mode_name)
    try:
        info = _manager().import_key(
            key, mode=mode_name, mode_input=secret, network=network, force=force
        )
    except PaperwallError as e:
        _fail(str(e))
    _print_wallet_panel("Wallet imported!", info)


@wallet_app.command("address")
def wallet_address():
    """Show the wallet address."""
    try:
        addr = _manager().address
    except PaperwallError as e:
        _fail(str(e))
    if addr is None:
        _fail("No wallet found. Run 'paperwall wallet create' first.")
    console.print(addr)


@wallet_app.command("info")
def wallet_info():
    """Show address, network and encryption mode without decrypting."""
    manager = _manager()
    try:
        wallet = load_wallet(manager.config_dir)
        if wallet is None:
            _fail("No wallet found. Run 'paperwall wallet create' first.")
        addr = manager.address
        mode = manager.encryption_mode
        network = get_network(wallet.network_id)
    except PaperwallError as e:
        _fail(str(e))

    console.print(Panel(
        f"Address:    [cyan]{addr}[/cyan]\n"
        f"Network:    {network.name} ({network.caip2})\n"
        f"Encryption: {mode.value}\n"
        f"Explorer:   {network.explorer_url}/address/{addr}",
        title="Paperwall Wallet",
    ))


@wallet_app.command("networks")
def wallet_networks():
    """List supported networks."""
    table = Table(title="Networks")
    table.add_column("CAIP-2", style="cyan")
    table.add_column("Name")
    table.add_column("USDC", style="dim")
    for net in list_networks():
        table.add_row(net.caip2, net.name, net.usdc_address)
    console.print(table)


# ------------------------------------------------------------------
# Payments
# ------------------------------------------------------------------

@app.command("sign")
def sign(
    amount: str = typer.Argument(help="Amount in the token's smallest unit (e.g. 10000 = 0.01 USDC)"),
    pay_to: str = typer.Option(..., "--pay-to", "-t", help="Recipient address (0x...)"),
    network: str = typer.Option(None, "--network", "-n", help="CAIP-2 network id"),
    asset_name: str = typer.Option("USDC", "--asset-name", help="EIP-712 domain name"),
    asset_version: str = typer.Option("2", "--asset-version", help="EIP-712 domain version"),
    contract: str = typer.Option(None, "--contract", help="Token contract (defaults to network USDC)"),
):
    """Sign a TransferWithAuthorization and print the payload as JSON."""
    manager = _manager()
    network = network or manager.config.default_network
    try:
        domain = _domain_for(network, asset_name, asset_version, contract)
        terms = PaymentTerms(network=network, amount=amount, pay_to=pay_to)
        signed = _run(manager.sign(domain, terms, prompt=_prompt_password))
    except (PaperwallError, ValueError) as e:
        _fail(str(e))
    console.print_json(json.dumps(signed.to_dict()))


@app.command("pay")
def pay(
    url: str = typer.Argument(help="Publisher payment endpoint"),
    amount: str = typer.Option(..., "--amount", "-a", help="Amount in smallest unit"),
    pay_to: str = typer.Option(..., "--pay-to", "-t", help="Recipient address (0x...)"),
    network: str = typer.Option(None, "--network", "-n", help="CAIP-2 network id"),
    asset_name: str = typer.Option("USDC", "--asset-name", help="EIP-712 domain name"),
    asset_version: str = typer.Option("2", "--asset-version", help="EIP-712 domain version"),
    contract: str = typer.Option(None, "--contract", help="Token contract (defaults to network USDC)"),
    agent_id: str = typer.Option(None, "--agent", help="Agent id recorded on the receipt"),
    output: Path = typer.Option(None, "--output", "-o", help="Write content here instead of stdout"),
    max_price: str = typer.Option(None, "--max-price", help="Refuse if the amount exceeds this many USDC"),
):
    """Sign and submit a payment, then print the unlocked content."""

    async def _pay():
        db = get_database(_config_dir())
        async with db:
            manager = _manager(receipts=ReceiptStore(db))
            net = network or manager.config.default_network
            domain = _domain_for(net, asset_name, asset_version, contract)
            terms = PaymentTerms(network=net, amount=amount, pay_to=pay_to)
            return await manager.pay(
                url, terms, domain, prompt=_prompt_password, agent_id=agent_id, max_price=max_price
            )

    try:
        result = _run(_pay())
    except PaymentDeclinedError as e:
        _fail(f"Payment declined: {e.reason}")
    except BudgetExceededError as e:
        _fail(_budget_message(e))
    except (PaperwallError, ValueError) as e:
        _fail(str(e))

    settlement = result.receipt.settlement
    err_console.print(Panel(
        f"[bold green]Paid {settlement.amount_formatted} {settlement.currency}[/bold green]\n\n"
        f"Tx:       [cyan]{settlement.tx_hash}[/cyan]\n"
        f"Explorer: {result.receipt.verification.explorer_url}\n"
        f"Receipt:  {result.receipt.id}",
        title="Payment Settled",
    ))
    if output is not None:
        output.write_text(result.response.content, encoding="utf-8")
        err_console.print(f"[dim]Content ({result.response.content_type}) written to {output}[/dim]")
    else:
        console.print(result.response.content, markup=False, highlight=False)


@app.command("receipts")
def receipts(
    stage: str = typer.Option(None, "--stage", "-s", help="Filter by stage (settled, declined)"),
    agent_id: str = typer.Option(None, "--agent", help="Filter by agent id"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum rows"),
    offset: int = typer.Option(0, "--offset", help="Rows to skip"),
):
    """Show recorded payment receipts, newest first."""
    try:
        stage_filter = ReceiptStage(stage) if stage else None
    except ValueError:
        _fail(f"Unknown stage: {stage}")

    async def _list():
        async with get_database(_config_dir()) as db:
            return await ReceiptStore(db).list_receipts(
                stage=stage_filter, agent_id=agent_id, limit=limit, offset=offset
            )

    page = _run(_list())
    if not page.receipts:
        console.print("[dim]No receipts.[/dim]")
        return

    table = Table(title=f"Receipts ({page.total} total)")
    table.add_column("ID", style="dim")
    table.add_column("When")
    table.add_column("Stage")
    table.add_column("Amount", justify="right")
    table.add_column("URL", style="cyan")
    table.add_column("Tx / Reason", style="dim")

    stage_colors = {"settled": "green", "declined": "red"}
    for r in page.receipts:
        color = stage_colors.get(r.ap2_stage.value, "white")
        if r.settlement is not None:
            amount = f"{r.settlement.amount_formatted} {r.settlement.currency}"
            detail = r.settlement.tx_hash[:18] + "..."
        else:
            amount = r.authorization.amount
            detail = (r.decline.reason if r.decline else "")[:40]
        table.add_row(
            r.id,
            r.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{color}]{r.ap2_stage.value}[/{color}]",
            amount,
            r.url[:48],
            detail,
        )
    console.print(table)
    if page.has_more:
        console.print(f"[dim]More receipts available; use --offset {offset + limit}.[/dim]")


# ------------------------------------------------------------------
# budget sub-commands
# ------------------------------------------------------------------

budget_app = typer.Typer(
    name="budget",
    help="Spending limits checked before every payment.",
    no_args_is_help=True,
)
app.add_typer(budget_app, name="budget")


@budget_app.command("set")
def budget_set(
    per_request: str = typer.Option(None, "--per-request", help="Max USDC per single payment"),
    daily: str = typer.Option(None, "--daily", help="Max USDC per UTC calendar day"),
    total: str = typer.Option(None, "--total", help="Lifetime max USDC"),
    require: bool = typer.Option(
        None, "--require/--no-require", help="Refuse payments when no limit applies"
    ),
):
    """Set spending limits.  Unspecified limits keep their current value."""
    updates = {
        key: value
        for key, value in (
            ("per_request_max", per_request),
            ("daily_max", daily),
            ("total_max", total),
            ("require_limits", require),
        )
        if value is not None
    }
    if not updates:
        _fail("At least one limit must be provided: --per-request, --daily, --total or --require.")

    config = _load_config()
    try:
        budget = BudgetConfig.model_validate({**config.budget.model_dump(), **updates})
    except ValidationError as e:
        _fail("; ".join(err["msg"] for err in e.errors()))
    save_config(config.model_copy(update={"budget": budget}), _config_path())
    console.print("[green]Budget updated.[/green]")
    _print_budget(budget, None)


@budget_app.command("show")
def budget_show():
    """Show limits, spending so far and what is left."""
    budget = _load_config().budget

    async def _totals():
        async with get_database(_config_dir()) as db:
            return await ReceiptStore(db).spending_totals(utc_day_start())

    _print_budget(budget, _run(_totals()))


def _print_budget(budget: BudgetConfig, totals) -> None:
    table = Table(title="Budget")
    table.add_column("Limit")
    table.add_column("Max (USDC)", justify="right")
    table.add_column("Spent", justify="right")
    table.add_column("Remaining", justify="right")

    def _usdc(value):
        return "-" if value is None else smallest_to_usdc(str(value))

    rows = [
        ("Per request", budget.per_request_max, None),
        ("Daily (UTC)", budget.daily_max, totals.today if totals else None),
        ("Total", budget.total_max, totals.lifetime if totals else None),
    ]
    for label, limit, spent in rows:
        left = remaining(limit, spent) if spent is not None else None
        table.add_row(label, limit or "[dim]none[/dim]", _usdc(spent), _usdc(left))
    console.print(table)
    if totals is not None:
        console.print(f"[dim]{totals.count} settled payment(s) recorded.[/dim]")
    if budget.require_limits:
        console.print("[dim]Payments without a limit or --max-price are refused.[/dim]")


if __name__ == "__main__":
    app()
