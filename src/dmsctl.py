#!/usr/bin/env python3
"""
CLI tool for the DMS endpoint operator
Provides a plan/apply interface for declared DMS endpoints and a
long-running reconcile loop
"""

import asyncio
import json
import logging
import signal

import click
import yaml
from pydantic import ValidationError
from tabulate import tabulate

from config import get_config
from manifest import load_manifests
from plugins.reconcilers.base import ReconcilerContext
from plugins.reconcilers.dms_endpoint import DmsEndpointReconciler
from plugins.registry import get_registry, register_builtin_plugins
from settings import describe_settings, endpoint_to_declaration
from state import JsonStateStore

logger = logging.getLogger(__name__)


def _context(state_path: str) -> ReconcilerContext:
    return ReconcilerContext(store=JsonStateStore(state_path))


def _load(filename):
    try:
        return load_manifests(filename)
    except ValidationError as e:
        raise click.ClickException(f"Invalid manifest {filename}:\n{e}")


def _public(declaration):
    """Declaration safe to print."""
    if "password" in declaration:
        declaration = {**declaration, "password": "(sensitive)"}
    return declaration


@click.group()
@click.option(
    "--state",
    "state_path",
    default=None,
    help="Path of the local state file (default: $DMS_STATE_PATH or dms-state.json)",
)
@click.pass_context
def cli(ctx, state_path):
    """DMS endpoint operator CLI - reconcile declared DMS endpoints"""
    config = get_config()
    logging.basicConfig(
        level=config.controller.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.obj = {"state_path": state_path or config.controller.state_path}


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.pass_obj
def plan(obj, filename):
    """Show what apply would change for the endpoints in a file"""
    reconciler = DmsEndpointReconciler()
    rctx = _context(obj["state_path"])

    async def run():
        return [
            (m.name, await reconciler.plan(m.to_resource(), rctx))
            for m in _load(filename)
        ]

    rows = []
    for name, result in asyncio.run(run()):
        rows.append(
            [
                name,
                result.action if result.success else "error",
                ", ".join(result.changes) or result.message,
                "yes" if result.drift_detected else "",
            ]
        )
    click.echo(tabulate(rows, headers=["Name", "Action", "Changes", "Drift"], tablefmt="grid"))


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.pass_obj
def apply(obj, filename):
    """Create or update the endpoints in a file"""
    reconciler = DmsEndpointReconciler()
    rctx = _context(obj["state_path"])

    async def run():
        results = []
        for manifest in _load(filename):
            result = await reconciler.reconcile(manifest.to_resource(), rctx)
            await rctx.record_reconciliation(manifest.name, result)
            results.append((manifest.name, result))
        return results

    failed = False
    for name, result in asyncio.run(run()):
        if result.success:
            click.echo(f"{name}: {result.action} - {result.message}")
        else:
            failed = True
            click.echo(f"{name}: failed - {result.message}", err=True)

    if failed:
        raise SystemExit(1)


@cli.command(name="import")
@click.argument("name")
@click.argument("identifier")
@click.pass_obj
def import_(obj, name, identifier):
    """Adopt an existing endpoint into local state"""
    reconciler = DmsEndpointReconciler()
    rctx = _context(obj["state_path"])

    endpoint = asyncio.run(reconciler.import_endpoint(name, identifier, rctx))
    if endpoint is None:
        raise click.ClickException(f"No endpoint with identifier '{identifier}'")

    click.echo(f"Imported {identifier} as {name}")
    click.echo(f"ARN: {endpoint.remote_reference}")


@cli.command()
@click.argument("name", required=False)
@click.option(
    "--output", "-o", type=click.Choice(["table", "json", "yaml"]), default="table"
)
@click.pass_obj
def show(obj, name, output):
    """Show endpoints held in local state"""
    store = JsonStateStore(obj["state_path"])
    names = [name] if name else store.names()

    endpoints = []
    for n in names:
        endpoint = store.get(n)
        if endpoint is None:
            raise click.ClickException(f"No state for '{n}'")
        endpoints.append((n, endpoint))

    if output == "table":
        rows = [
            [
                n,
                e.identifier,
                e.role.value,
                e.engine_kind.value,
                describe_settings(e.settings) or "",
                e.remote_reference or "",
            ]
            for n, e in endpoints
        ]
        headers = ["Name", "Identifier", "Role", "Engine", "Target", "ARN"]
        click.echo(tabulate(rows, headers=headers, tablefmt="grid"))
        return

    data = {n: _public(endpoint_to_declaration(e)) for n, e in endpoints}
    if output == "yaml":
        click.echo(yaml.dump(data, default_flow_style=False))
    else:
        click.echo(json.dumps(data, indent=2))


@cli.command()
@click.argument("name")
@click.confirmation_option(prompt="Are you sure you want to delete this endpoint?")
@click.pass_obj
def destroy(obj, name):
    """Delete an endpoint and remove it from local state"""
    reconciler = DmsEndpointReconciler()
    rctx = _context(obj["state_path"])

    result = asyncio.run(reconciler.reconcile({"name": name, "deleting": True}, rctx))
    if not result.success:
        raise click.ClickException(result.message)
    click.echo(result.message)


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.pass_obj
def run(obj, filename):
    """Keep the endpoints in a file reconciled until interrupted"""
    manifests = _load(filename)
    register_builtin_plugins()
    registry = get_registry()

    reconcilers = {}
    for manifest in manifests:
        reconciler = registry.get_reconciler_for_resource_type(manifest.kind)
        if reconciler is None:
            raise click.ClickException(f"No reconciler for resource type '{manifest.kind}'")
        reconcilers[reconciler.name] = reconciler

    async def main():
        rctx = _context(obj["state_path"])
        for manifest in manifests:
            rctx.enqueue(manifest.to_resource())

        loop = asyncio.get_event_loop()

        def signal_handler():
            logger.info("Received shutdown signal")
            rctx.shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        try:
            await asyncio.gather(*(r.start(rctx) for r in reconcilers.values()))
        finally:
            for reconciler in reconcilers.values():
                await reconciler.stop()

    click.echo(f"Reconciling {len(manifests)} endpoint(s), press Ctrl+C to stop")
    asyncio.run(main())
    click.echo("Stopped")


if __name__ == "__main__":
    cli()
