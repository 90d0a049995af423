"""CLI entry point for vrf-fulfiller."""

import json
import logging

import click

from .beacon import BeaconValue
from .config import build_config, load_config
from .errors import ConfigError, UnreachableBeacon
from .executor import Executor, ExecutionResult, make_beacon
from .rounds import current_round, round_time


class ClickHandler(logging.Handler):
    """Routes log records through click.echo (warnings and above to stderr)."""

    def emit(self, record):
        try:
            click.echo(self.format(record), err=record.levelno >= logging.WARNING)
        except Exception:
            self.handleError(record)


def setup_logging(verbose: bool):
    handler = ClickHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger("vrf_fulfiller")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.propagate = False


def beacon_dict(beacon: BeaconValue) -> dict:
    out = {
        "round": beacon.round,
        "randomness": beacon.randomness.hex(),
        "signature": beacon.signature.hex(),
    }
    if beacon.previous_signature:
        out["previous_signature"] = beacon.previous_signature.hex()
    return out


def result_dict(result: ExecutionResult, details: bool) -> dict:
    out = result.to_dict()
    out["checkpoint"] = result.checkpoint
    if details and result.can_execute:
        out["fulfillments"] = [
            {
                "requestId": f.request.request_id,
                "block": f.request.source_block,
                "round": f.beacon.round,
                "consumer": f.request.consumer,
                "seed": "0x" + f.seed.hex(),
                "words": [hex(w) for w in f.words],
            }
            for f in result.fulfillments
        ]
    return out


@click.group()
@click.option("--rpc", "rpc_urls", multiple=True, envvar="RPC_URL", help="Ethereum RPC URL (repeatable)")
@click.option("--adapter", envvar="ADAPTER_ADDRESS", default=None, help="Adapter contract address")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True), help="Path to config.yaml")
@click.option("--state", "state_file", default=None, help="Checkpoint file (default: checkpoint.yaml)")
@click.option("--chain-id", default=None, type=int, help="Chain id used in seed derivation (default: from RPC)")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Debug logging")
@click.pass_context
def cli(ctx, rpc_urls, adapter, config_path, state_file, chain_id, verbose):
    """vrf-fulfiller: fulfill on-chain randomness requests with drand."""
    setup_logging(verbose)
    cfg = load_config(config_path)
    ctx.ensure_object(dict)

    if rpc_urls:
        cfg["rpc_urls"] = list(rpc_urls)
    if adapter:
        cfg["adapter"] = adapter
    if state_file:
        cfg["state_file"] = state_file
    if chain_id is not None:
        cfg["chain_id"] = chain_id
    ctx.obj["config"] = cfg


def get_config(ctx):
    try:
        return build_config(ctx.obj["config"])
    except ConfigError as e:
        raise click.ClickException(str(e))


def get_executor(ctx) -> Executor:
    config = get_config(ctx)
    if not config.rpc_urls:
        raise click.ClickException("RPC URL required (--rpc or config rpc_urls)")
    try:
        return Executor.from_config(config)
    except ConfigError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.option("--details", is_flag=True, default=False, help="Include seeds and derived words")
@click.pass_context
def run(ctx, details):
    """Run one invocation and print the result as JSON."""
    executor = get_executor(ctx)
    result = executor.run_once()
    click.echo(json.dumps(result_dict(result, details), indent=2))
    if not result.can_execute:
        ctx.exit(1)


@cli.command()
@click.option("--interval", default=10.0, type=float, help="Seconds between invocations (default: 10)")
@click.option("--count", default=None, type=int, help="Number of invocations (default: infinite)")
@click.option("--details", is_flag=True, default=False, help="Include seeds and derived words")
@click.pass_context
def watch(ctx, interval, count, details):
    """Run invocations on a timer, printing each result as one JSON line."""
    executor = get_executor(ctx)
    click.echo(f"Watching adapter {executor.config.adapter} every {interval}s")
    n = executor.run_loop(
        interval=interval, count=count,
        on_result=lambda r: click.echo(json.dumps(result_dict(r, details))),
    )
    click.echo(f"{n} invocation(s)")


@cli.command()
@click.argument("round_number", required=False, type=int)
@click.pass_context
def beacon(ctx, round_number):
    """Fetch and verify a drand round (latest if omitted)."""
    config = get_config(ctx)
    client = make_beacon(config)
    try:
        value = client.fetch(round_number)
    except UnreachableBeacon as e:
        raise click.ClickException(f"Beacon unreachable: {e}")
    click.echo(json.dumps(beacon_dict(value), indent=2))


@cli.command("round")
@click.pass_context
def round_cmd(ctx):
    """Show the current round of the configured drand chain."""
    chain = get_config(ctx).beacon.chain
    r = current_round(chain)
    click.echo(f"Chain:          {chain.hash}")
    click.echo(f"Scheme:         {chain.scheme}")
    click.echo(f"Period:         {chain.period}s")
    click.echo(f"Current round:  {r}")
    click.echo(f"Published at:   {round_time(r, chain)}")


@cli.command()
@click.pass_context
def status(ctx):
    """Show checkpoint, current block and backlog."""
    executor = get_executor(ctx)
    try:
        info = executor.status()
    except ConfigError as e:
        raise click.ClickException(str(e))
    click.echo(f"Adapter:             {info['adapter']}")
    click.echo(f"State file:          {info['state_file']}")
    click.echo(f"Checkpoint:          {info['checkpoint'] if info['checkpoint'] is not None else '(none)'}")
    click.echo(f"Current block:       {info['current_block']}")
    click.echo(f"Backlog:             {info['backlog']} blocks")
    click.echo(f"Max blocks per run:  {info['max_blocks_per_run']}")


if __name__ == "__main__":
    cli()
