"""``demoreel`` command line: pay for and track repository demo videos."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import typer
from pydantic import ValidationError
from solders.transaction import Transaction

from .application.status_projector import StatusProjector
from .crypto.transfer import format_sol
from .dependencies import open_job_api, open_pipeline
from .domain.entities import JobHandle, JobState
from .domain.errors import DemoReelError
from .envs.client_env import Settings, get_settings
from .infrastructure.payment_ledger import UnresolvedPaymentStore
from .infrastructure.wallet.keypair_wallet import KeypairWallet

app = typer.Typer(
    name="demoreel",
    help="Generate demo videos for GitHub repositories, paid in SOL",
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_settings() -> Settings:
    try:
        return get_settings()
    except (ValidationError, ValueError) as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(2)


def _signature_prompt(
    settings: Settings, assume_yes: bool
) -> Callable[[Transaction], bool]:
    def approve(_: Transaction) -> bool:
        if assume_yes:
            return True
        return typer.confirm(
            f"Approve transfer of {format_sol(settings.price_lamports)} "
            f"to {settings.recipient_address}?",
            default=False,
        )

    return approve


@app.command()
def wallet() -> None:
    """Connect the configured keypair wallet and show its address."""
    settings = _load_settings()
    keypair_wallet = KeypairWallet.from_file(settings.wallet_keypair_path)
    projector = StatusProjector(listener=typer.echo)

    async def _connect() -> None:
        async with open_pipeline(settings, keypair_wallet, projector) as pipeline:
            session = await pipeline.connect_wallet()
        typer.echo(session.address)

    try:
        asyncio.run(_connect())
    except DemoReelError:
        raise typer.Exit(1)


@app.command()
def generate(
    github_url: str = typer.Argument(..., help="https://github.com/owner/repo"),
    free: bool = typer.Option(False, "--free", help="Request the free sample"),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Poll until done"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Approve the payment"),
    force_new_payment: bool = typer.Option(
        False,
        "--force-new-payment",
        help="Pay again even if an earlier payment's outcome is unknown",
    ),
) -> None:
    """Request a demo video and follow it to completion."""
    settings = _load_settings()
    store = UnresolvedPaymentStore.in_dir(settings.state_dir)
    try:
        unresolved = None if free else store.load()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    keypair_wallet = KeypairWallet.from_file(
        settings.wallet_keypair_path,
        approve_signature=_signature_prompt(settings, yes),
    )
    projector = StatusProjector(listener=typer.echo)

    async def _run() -> bool:
        async with open_pipeline(
            settings, keypair_wallet, projector, unresolved=unresolved
        ) as pipeline:
            handle: JobHandle | None
            if free:
                handle = await pipeline.request_free_sample(github_url)
            else:
                try:
                    session = await pipeline.connect_wallet()
                    handle = await pipeline.request_paid_video(
                        session, github_url, force_new_payment=force_new_payment
                    )
                finally:
                    store.save(pipeline.unresolved_payment)
            if handle is None:
                return False
            if not wait:
                typer.echo(f"Check progress with: demoreel status {handle.job_id}")
                return True
            final = await pipeline.track(handle)
        return final.state is JobState.COMPLETED

    try:
        completed = asyncio.run(_run())
    except (DemoReelError, ValueError):
        raise typer.Exit(1)
    if not completed:
        raise typer.Exit(1)


@app.command()
def status(job_id: str = typer.Argument(..., help="Job id returned by generate")) -> None:
    """Show the current state of a job."""
    settings = _load_settings()

    async def _status() -> None:
        async with open_job_api(settings) as job_api:
            snapshot = await job_api.get_job_status(job_id)
        typer.echo(f"{snapshot.job_id}: {snapshot.state.value} ({snapshot.progress:.0f}%)")
        if snapshot.result is not None:
            typer.echo(f"Download: {snapshot.result.download_url}")
        if snapshot.error:
            typer.echo(f"Error: {snapshot.error}")

    try:
        asyncio.run(_status())
    except DemoReelError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
