"""
CLI interface for logshades.

Provides a command-line interface with:
- One-shot queries over a time range (query)
- Continuous tailing (follow)
- Password management in the system keyring (login)
- Interactive configuration setup (init)
- Overview of configured nodes (nodes)

Rendered records go to stdout; logs, prompts and errors go to stderr.
"""

import asyncio
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from .backends import BackendType, capabilities_for, create_backend
from .config import Config, NodeConfig
from .credentials import CredentialStore
from .errors import ConfigError, ConfigFileExistsError, DateParseError, LogShadesError, NoUserError
from .executor import QueryExecutor
from .follow import FollowEngine, initial_state
from .models import GenericQuery
from .render import TemplateRenderer
from .timerange import resolve, utc_now

console = Console(stderr=True)
stdout_console = Console()

logger = logging.getLogger(__name__)


def setup_logging(level: str, log_file: Optional[str] = None) -> None:
    """Configure logging."""
    handlers = [logging.StreamHandler(sys.stderr)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True
    )


@contextmanager
def reporting():
    """Print logshades errors and interrupts and exit with the matching status."""
    try:
        yield
    except LogShadesError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise SystemExit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping gracefully...[/yellow]")
        raise SystemExit(130)


def _load_config(ctx) -> Config:
    """Load the config once per invocation; its log settings apply unless given on the command line."""
    if 'config' not in ctx.obj:
        config = Config.from_env(ctx.obj['config_path'])
        if not ctx.obj['log_level']:
            setup_logging(config.log_level, ctx.obj['log_file'] or config.log_file)
        ctx.obj['config'] = config
    return ctx.obj['config']


def _renderer(ctx, config: Config) -> TemplateRenderer:
    name = ctx.obj['template'] or config.default_template
    return TemplateRenderer(config.template(name), name=name)


@click.group()
@click.option('--config', '-c', type=click.Path(dir_okay=False), help='Config file path')
@click.option('--node', '-n', help='Node to query (default from config)')
@click.option('--template', '-t', help='Output template name (default from config)')
@click.option('--log-level', '-l', help='Log level (default WARNING)')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Also write logs to this file')
@click.pass_context
def cli(ctx, config, node, template, log_level, log_file):
    """
    logshades - Query and tail logs from Graylog, Elasticsearch and
    Google Cloud Logging.

    Every record is rendered through a Jinja2 template and printed on
    stdout, oldest first.
    """
    ctx.ensure_object(dict)

    ctx.obj['config_path'] = Path(config) if config else Config.default_path()
    ctx.obj['node'] = node
    ctx.obj['template'] = template
    ctx.obj['log_level'] = log_level
    ctx.obj['log_file'] = log_file

    setup_logging(log_level or "WARNING", log_file)


@cli.command()
@click.option('--from', '-f', 'from_', default='10 minutes ago', show_default=True,
              help='Start of the time range')
@click.option('--to', '-u', 'to', default='now', show_default=True, help='End of the time range')
@click.option('--limit', type=click.IntRange(min=0), help='Maximum records to print')
@click.argument('terms', nargs=-1)
@click.pass_context
def query(ctx, from_, to, limit, terms):
    """
    Print the records of a time range.

    TERMS are free-text terms that must all match; without terms every
    record in the range is printed.

    Examples:

        logshades query

        logshades query --from "2 hours ago" --to "1 hour ago" error

        logshades -n es query --from 2024-01-01 --to 2024-01-02 --limit 100
    """
    with reporting():
        config = _load_config(ctx)
        node = config.node(ctx.obj['node'])
        renderer = _renderer(ctx, config)

        reference = utc_now()
        start = resolve(from_, reference).start
        end = resolve(to, reference).end
        if start > end:
            raise DateParseError(from_, f"start is after the end of the range ({to})")

        generic = GenericQuery(start=start, end=end, terms=terms, limit=limit)
        backend = create_backend(node, CredentialStore())
        executor = QueryExecutor(renderer, emit=click.echo)

        count = asyncio.run(_query(executor, backend, generic))
        logger.info(f"Printed {count} records")


async def _query(executor: QueryExecutor, backend, generic: GenericQuery) -> int:
    """Internal async query implementation."""
    async with backend:
        return await executor.run(backend, generic)


@cli.command()
@click.option('--from', '-f', 'from_', help='Start of the first window (default: now minus latency)')
@click.option('--latency', type=click.FloatRange(min=0), help='Seconds to stay behind now (default 10)')
@click.option('--poll-interval', type=click.IntRange(min=1),
              help='Milliseconds between polls (default 1000)')
@click.argument('terms', nargs=-1)
@click.pass_context
def follow(ctx, from_, latency, poll_interval, terms):
    """
    Continuously print new records, like tail -f.

    Graylog and Elasticsearch are polled with a window that trails the
    current time by the latency; Google Cloud Logging streams natively.
    Press Ctrl+C to stop.

    Examples:

        logshades follow

        logshades follow --latency 30 --poll-interval 5000 error

        logshades -n gcp follow --from "5 minutes ago"
    """
    with reporting():
        config = _load_config(ctx)
        node = config.node(ctx.obj['node'])
        renderer = _renderer(ctx, config)

        state = initial_state(
            node=node.name,
            start=from_,
            latency=latency if latency is not None else config.latency,
            poll_interval=poll_interval / 1000 if poll_interval else config.poll_interval,
            reference=utc_now()
        )
        backend = create_backend(node, CredentialStore())
        executor = QueryExecutor(renderer, emit=click.echo)
        engine = FollowEngine(executor, backend, state, terms=terms)

        asyncio.run(_follow(engine))


async def _follow(engine: FollowEngine) -> int:
    """Internal async follow implementation."""
    async with engine.backend:
        return await engine.run()


@cli.command()
@click.pass_context
def login(ctx):
    """Store the password of the selected node in the system keyring."""
    with reporting():
        config = _load_config(ctx)
        node = config.node(ctx.obj['node'])

        if node.type == BackendType.GOOGLE:
            console.print(
                "[yellow]Google nodes use application default credentials.[/yellow]\n"
                "Run [cyan]gcloud auth application-default login[/cyan] instead."
            )
            return
        if not node.user:
            raise NoUserError(node.name)

        secret = Prompt.ask(
            f"Password for [bold]{node.user}[/bold] at [bold]{node.name}[/bold]",
            password=True,
            console=console
        )
        CredentialStore().set(node.name, node.user, secret)
        console.print(f"[green]Password stored for {node.user} at {node.name}[/green]")


@cli.command()
@click.pass_context
def init(ctx):
    """Create a configuration file interactively."""
    with reporting():
        config_path: Path = ctx.obj['config_path']
        if config_path.exists():
            raise ConfigFileExistsError(str(config_path))

        console.print(Panel.fit(
            "[bold blue]logshades setup[/bold blue]\n\n"
            "This will create a configuration file with one node.\n"
            "More nodes and templates can be added to the file later.",
            title="Welcome"
        ))

        name = Prompt.ask("Node name", default="default", console=console)
        node_type = Prompt.ask(
            "Backend type",
            choices=[t.value for t in BackendType],
            default=BackendType.GRAYLOG.value,
            console=console
        )

        data = {"type": node_type}
        if node_type == BackendType.GOOGLE.value:
            resources = Prompt.ask(
                "Resource names, comma separated (e.g. projects/my-project)",
                console=console
            )
            data["resources"] = [r.strip() for r in resources.split(",") if r.strip()]
        else:
            data["url"] = Prompt.ask("Base URL", console=console)
            data["user"] = Prompt.ask("User (empty for none)", default="", console=console)

        node = NodeConfig.from_dict(name, data)
        errors = node.validate()
        if errors:
            raise ConfigError("Invalid node: " + "; ".join(errors))

        config = Config(nodes={name: node}, default_node=name)
        config.to_file(config_path)

        console.print(f"\n[green]Configuration saved to: {config_path}[/green]")
        if node.user:
            console.print("\nStore the password with:")
            console.print(f"  [cyan]logshades --node {name} login[/cyan]")
        console.print("\nYou can now run:")
        console.print(f"  [cyan]logshades --node {name} query[/cyan]")


@cli.command()
@click.pass_context
def nodes(ctx):
    """List configured nodes and what their backends support."""
    with reporting():
        config = _load_config(ctx)

        for error in config.validate():
            console.print(f"[yellow]Warning: {escape(error)}[/yellow]")

        table = Table(title="Configured Nodes")
        table.add_column("Name", style="cyan")
        table.add_column("Type")
        table.add_column("Target")
        table.add_column("User")
        table.add_column("Limitations", style="dim")

        for name, node in sorted(config.nodes.items()):
            capabilities = capabilities_for(node.type)
            label = f"{name} *" if name == config.default_node else name
            target = ", ".join(node.resources) if node.type == BackendType.GOOGLE else node.url
            table.add_row(
                label,
                node.type.value,
                target or "-",
                node.user or "-",
                "\n".join(capabilities.get_limitations()) or "-"
            )

        stdout_console.print(table)


def main():
    """Entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
