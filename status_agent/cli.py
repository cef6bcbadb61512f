"""
Status agent command line entry point.

Commands: run (run the agent in the foreground), check (validate the config
file) and keygen (create the node key and print the node id).
"""
import asyncio
import logging
import signal
import sys

import click

from status_agent import __version__
from status_agent.config import FileConfigSource, load_config


DEFAULT_CONFIG = "/etc/status-agent/agent.yaml"


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # one request line per heartbeat attempt is noise outside --verbose
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)


@click.group(invoke_without_command=True)
@click.option("--config", "-c", default=DEFAULT_CONFIG, envvar="STATUS_AGENT_CONFIG",
              help="Config file path (re-read on every heartbeat)")
@click.option("--verbose", "-v", is_flag=True, help="Log every cycle and HTTP request")
@click.version_option(version=__version__, prog_name="status-agent")
@click.pass_context
def cli(ctx, config, verbose):
    """Report signed storage-node metrics to a status server.

    Nothing is sent unless analytics.enabled is set in the config.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    _setup_logging(verbose)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option("--build-hash", default="", help="Build hash reported with the node identity")
@click.pass_context
def run(ctx, build_hash):
    """Run the agent in the foreground."""
    logger = logging.getLogger("status-agent")
    config_path = ctx.obj["config_path"]

    try:
        cfg = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    from status_agent.agent import activate
    from status_agent.host import LocalNode, load_or_create_key

    try:
        key = load_or_create_key(cfg.identity.key_file)
    except (OSError, ValueError) as e:
        click.echo(f"Error: cannot load node key: {e}", err=True)
        sys.exit(1)
    node = LocalNode(key, cfg.datastore.path)

    logger.info(f"Starting Status Agent v{__version__}")
    logger.info(f"Node: {node.identity}")
    logger.info(f"Status server: {cfg.services.status_server_domain or '(not set)'}")
    logger.info(f"Analytics consent: {'granted' if cfg.analytics.enabled else 'not granted'}")
    logger.info(f"Heartbeat: {cfg.timing.heartbeat}s")

    async def _main():
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()

        def _shutdown(sig):
            logger.info(f"Received {sig.name}, shutting down...")
            stop.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _shutdown, sig)

        task = activate(node, __version__, build_hash, FileConfigSource(config_path), stop_event=stop)
        if task is None:
            logger.error("Agent not activated")
            return 1
        await task
        return 0

    try:
        code = asyncio.run(_main())
    except Exception:
        logger.exception("Agent crashed")
        sys.exit(1)
    sys.exit(code)


@cli.command()
@click.pass_context
def check(ctx):
    """Validate the config file."""
    config_path = ctx.obj["config_path"]
    try:
        cfg = load_config(config_path)
        click.echo(f"Config OK: {config_path}")
        click.echo(f"   Status server: {cfg.services.status_server_domain or '(not set)'}")
        click.echo(f"   Analytics: {'enabled' if cfg.analytics.enabled else 'disabled'}")
        click.echo(f"   Storage max: {cfg.datastore.storage_max}")
        click.echo(f"   Heartbeat: {cfg.timing.heartbeat}s")
    except Exception as e:
        click.echo(f"Config error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def keygen(ctx):
    """Create the node key if missing and print the node id."""
    from status_agent.host import load_or_create_key, node_id_for

    try:
        cfg = load_config(ctx.obj["config_path"])
        key = load_or_create_key(cfg.identity.key_file)
    except (OSError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(node_id_for(key))


def main():
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
