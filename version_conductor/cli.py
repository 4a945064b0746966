"""Click CLI: build, query and export dependency graphs; manage the cache."""

from __future__ import annotations

import functools
import json
import logging
from pathlib import Path
from typing import Any

import click

from version_conductor import __version__
from version_conductor.builder import CachedGraphBuilder, GraphBuilder
from version_conductor.cache import ModuleCache
from version_conductor.config import Settings, expand_accounts, load_portfolio
from version_conductor.ecosystems import Ecosystem
from version_conductor.errors import VersionConductorError
from version_conductor.exporter import DotConfig, MermaidConfig, export_formats, get_exporter
from version_conductor.graph import DependencyGraph
from version_conductor.hosting import GitHubClient
from version_conductor.models import Module, Portfolio
from version_conductor.progress import ProgressTracker
from version_conductor.snapshot import load_snapshot, save_snapshot, write_module_tree

_ECOSYSTEM_CHOICES = [eco.value for eco in Ecosystem]
_OUTPUT_CHOICES = ["table", "json"]


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), help="Settings YAML file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool):
    """version-conductor: dependency graphs across accounts and ecosystems."""
    try:
        settings = Settings.load(config_path)
    except VersionConductorError as e:
        raise click.ClickException(str(e))
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    ctx.obj = settings


# ── Shared helpers ───────────────────────────────────────────


def _source_options(f):
    """Options selecting where a graph comes from: a live build or a snapshot."""
    options = [
        click.option("--accounts", "-a", multiple=True, help="Account(s) to scan, e.g. acme or github.com/acme"),
        click.option("--portfolio", "portfolio_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
                     help="Portfolio YAML/JSON file"),
        click.option("--ecosystem", "-e", "ecosystems", multiple=True, type=click.Choice(_ECOSYSTEM_CHOICES),
                     help="Restrict to ecosystem(s)"),
        click.option("--snapshot", "snapshot_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
                     help="Read a saved snapshot instead of building"),
        click.option("--only-account", help="Keep only modules owned by this account"),
        click.option("--no-cache", is_flag=True, help="Bypass the module cache"),
        click.option("--refresh", is_flag=True, help="Rebuild even if a cached graph exists"),
        click.option("--cache-dir", type=click.Path(file_okay=False, path_type=Path), help="Cache directory"),
        click.option("--cache-ttl", type=float, help="Cache TTL in seconds"),
        click.option("--workers", "-w", type=int, help="Concurrent repository fetches per account"),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _format_option(f):
    return click.option("--format", "-f", "output_format", type=click.Choice(_OUTPUT_CHOICES),
                        default="table", help="Output format")(f)


def _open_cache(settings: Settings, cache_dir: Path | None, cache_ttl: float | None) -> ModuleCache:
    return ModuleCache(
        directory=cache_dir or settings.cache_dir,
        ttl=cache_ttl or settings.cache_ttl,
        memory_only=settings.memory_only,
    )


def _resolve_portfolio(accounts: tuple[str, ...], portfolio_path: Path | None,
                       ecosystems: tuple[str, ...]) -> Portfolio:
    if portfolio_path:
        portfolio = load_portfolio(portfolio_path)
        if accounts:
            portfolio.accounts = expand_accounts([*portfolio.accounts, *accounts])
    else:
        portfolio = Portfolio(accounts=expand_accounts(accounts))
    if ecosystems:
        portfolio.ecosystems = [Ecosystem(tag) for tag in ecosystems]
    if not portfolio.accounts:
        raise click.UsageError("Specify --accounts, --portfolio or --snapshot")
    return portfolio


def _load_graph(settings: Settings, opts: dict[str, Any]) -> DependencyGraph:
    if opts["snapshot_path"]:
        graph = DependencyGraph.from_snapshot(load_snapshot(opts["snapshot_path"]))
        if opts["ecosystems"]:
            graph = _filter_ecosystems(graph, opts["ecosystems"])
    else:
        portfolio = _resolve_portfolio(opts["accounts"], opts["portfolio_path"], opts["ecosystems"])
        graph = _build_graph(settings, portfolio, opts)

    if opts["only_account"]:
        graph = graph.filter_by_account(opts["only_account"])
    return graph


def _filter_ecosystems(graph: DependencyGraph, tags: tuple[str, ...]) -> DependencyGraph:
    if len(tags) == 1:
        return graph.filter_by_ecosystem(Ecosystem(tags[0]))
    merged = DependencyGraph(graph.portfolio)
    for tag in sorted(set(tags)):
        for module in graph.filter_by_ecosystem(Ecosystem(tag)).all_modules():
            merged.add_module(module)
    return merged


def _build_graph(settings: Settings, portfolio: Portfolio, opts: dict[str, Any]) -> DependencyGraph:
    use_cache = settings.cache_enabled and not opts["no_cache"]
    cache = _open_cache(settings, opts["cache_dir"], opts["cache_ttl"]) if use_cache else None
    tracker = ProgressTracker()

    with GitHubClient(
        token=settings.token,
        base_url=settings.api_url,
        max_retries=settings.max_retries,
        initial_backoff=settings.initial_backoff,
    ) as client:
        builder = GraphBuilder(
            client,
            cache=cache,
            progress=tracker,
            max_workers=opts["workers"] or settings.workers,
        )
        if cache is None:
            return builder.build(portfolio)
        return CachedGraphBuilder(builder, cache).build(portfolio, refresh=opts["refresh"])


def _graph_command(f):
    """Load the graph from the shared source options and pass it on as ``graph``."""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        settings = click.get_current_context().find_object(Settings) or Settings()
        source_keys = ("accounts", "portfolio_path", "ecosystems", "snapshot_path", "only_account",
                       "no_cache", "refresh", "cache_dir", "cache_ttl", "workers")
        opts = {k: kwargs.pop(k) for k in source_keys}
        try:
            graph = _load_graph(settings, opts)
        except VersionConductorError as e:
            raise click.ClickException(str(e))
        except ValueError as e:
            raise click.ClickException(f"invalid snapshot: {e}")
        return f(*args, graph=graph, **kwargs)
    return _source_options(wrapper)


def _resolve_module(graph: DependencyGraph, ref: str) -> str:
    """Accept a full module id or a bare module name."""
    if ref in graph:
        return ref
    matches = [m.id for m in graph.all_modules() if m.name == ref]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise click.ClickException(f"{ref} is ambiguous: {', '.join(matches)}")
    return ref


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


def _echo_modules(modules: list[Module], output_format: str, empty: str) -> None:
    if output_format == "json":
        _echo_json([m.to_dict() for m in modules])
        return
    if not modules:
        click.echo(empty)
        return
    for m in modules:
        kind = click.style("managed", fg="green") if m.is_managed else click.style("external", dim=True)
        click.echo(f"  {m.id}  {m.version or '-'}  {kind}")


# ── graph ────────────────────────────────────────────────────


@cli.group()
def graph():
    """Build and query dependency graphs."""


@graph.command()
@_graph_command
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Save the snapshot JSON here")
@click.option("--tree", type=click.Path(file_okay=False, path_type=Path), help="Write a per-module file tree here")
def build(graph: DependencyGraph, output: Path | None, tree: Path | None):
    """Build the graph and optionally persist it."""
    snapshot = graph.snapshot()
    if output:
        save_snapshot(snapshot, output)
        click.echo(f"Snapshot written to {output}")
    if tree:
        count = write_module_tree(snapshot, tree)
        click.echo(f"Wrote {count} file(s) under {tree}")

    stats = graph.stats()
    click.echo(
        f"{stats.total_modules} module(s): {stats.managed_modules} managed, "
        f"{stats.external_modules} external, {stats.total_edges} edge(s)"
    )


@graph.command()
@_graph_command
@click.argument("module")
@click.option("--transitive", is_flag=True, help="Include indirect dependents")
@_format_option
def dependents(graph: DependencyGraph, module: str, transitive: bool, output_format: str):
    """Modules that depend on MODULE (id or name)."""
    module_id = _resolve_module(graph, module)
    found = graph.transitive_dependents(module_id) if transitive else graph.dependents(module_id)
    _echo_modules(found, output_format, f"No modules depend on {module_id}.")


@graph.command()
@_graph_command
@click.argument("module")
@_format_option
def dependencies(graph: DependencyGraph, module: str, output_format: str):
    """Modules in the graph that MODULE depends on."""
    module_id = _resolve_module(graph, module)
    _echo_modules(graph.dependencies(module_id), output_format, f"No known dependencies for {module_id}.")


@graph.command()
@_graph_command
@_format_option
def order(graph: DependencyGraph, output_format: str):
    """Upgrade order for managed modules, dependencies first."""
    result = graph.upgrade_order()
    if output_format == "json":
        _echo_json(result.to_dict())
        return

    if not result.ordered and not result.cycles:
        click.echo("No managed modules.")
        return
    for index, m in enumerate(result.ordered, 1):
        click.echo(f"{index:>4}. {m.id}")
    for cycle in result.cycles:
        click.echo(click.style(f"\nCycle ({len(cycle.modules)} module(s)):", fg="red"))
        for module_id in cycle.modules:
            click.echo(f"      {module_id}")


@graph.command()
@_graph_command
@click.argument("dependency")
@click.argument("min_version")
@_format_option
def stale(graph: DependencyGraph, dependency: str, min_version: str, output_format: str):
    """Managed modules pinning DEPENDENCY below MIN_VERSION (string comparison)."""
    found = graph.stale_modules(dependency, min_version)
    if output_format == "json":
        _echo_json([s.to_dict() for s in found])
        return
    if not found:
        click.echo(f"No managed module pins {dependency} below {min_version}.")
        return
    for s in found:
        click.echo(f"  {s.module.id}  {s.current} < {s.required}")


@graph.command("stats")
@_graph_command
@_format_option
def graph_stats(graph: DependencyGraph, output_format: str):
    """Module and edge counts."""
    stats = graph.stats()
    if output_format == "json":
        _echo_json(stats.to_dict())
        return
    click.echo(f"Modules:  {stats.total_modules}")
    click.echo(f"Managed:  {stats.managed_modules}")
    click.echo(f"External: {stats.external_modules}")
    click.echo(f"Edges:    {stats.total_edges}")
    if stats.by_ecosystem:
        click.echo("By ecosystem:")
        for eco, count in stats.by_ecosystem.items():
            click.echo(f"  {eco}: {count}")
    if stats.by_account:
        click.echo("By account:")
        for account, count in stats.by_account.items():
            click.echo(f"  {account or '(none)'}: {count}")


@graph.command()
@_graph_command
@_format_option
@click.pass_context
def validate(ctx: click.Context, graph: DependencyGraph, output_format: str):
    """Report missing managed dependencies and cycles; exit 1 if any."""
    issues = graph.validate()
    if output_format == "json":
        _echo_json([{"kind": i.kind, "module": i.module, "message": i.message} for i in issues])
    elif not issues:
        click.echo("Graph is valid.")
    else:
        for issue in issues:
            click.echo(f"  [{issue.kind}] {issue.module}: {issue.message}")
    if issues:
        ctx.exit(1)


@graph.command()
@_graph_command
@click.option("--format", "-f", "fmt", type=click.Choice(export_formats()), default="dot", help="Diagram format")
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Output file (default stdout)")
@click.option("--title", default="Dependency Graph", help="Graph title (dot)")
@click.option("--direction", type=click.Choice(["TB", "BT", "LR", "RL"]), default="TB", help="Layout direction")
@click.option("--show-external", is_flag=True, help="Include external modules")
@click.option("--no-versions", is_flag=True, help="Omit version labels on edges (dot)")
@click.option("--no-cluster", is_flag=True, help="Do not group nodes by account (dot)")
def export(graph: DependencyGraph, fmt: str, output: Path | None, title: str, direction: str,
           show_external: bool, no_versions: bool, no_cluster: bool):
    """Export the graph as Graphviz DOT or Mermaid."""
    if fmt == "dot":
        config: DotConfig | MermaidConfig = DotConfig(
            title=title,
            rank_dir=direction,
            show_external=show_external,
            show_versions=not no_versions,
            cluster_by_account=not no_cluster,
        )
    else:
        config = MermaidConfig(direction=direction, show_external=show_external)

    text = get_exporter(fmt, config).render(graph)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        click.echo(f"Wrote {fmt} to {output}")
    else:
        click.echo(text, nl=False)


# ── cache ────────────────────────────────────────────────────


@cli.group()
@click.option("--cache-dir", type=click.Path(file_okay=False, path_type=Path), help="Cache directory")
@click.pass_context
def cache(ctx: click.Context, cache_dir: Path | None):
    """Inspect and maintain the module cache."""
    settings = ctx.find_object(Settings) or Settings()
    ctx.obj = _open_cache(settings, cache_dir, None)


@cache.command("stats")
@_format_option
@click.pass_obj
def cache_stats(module_cache: ModuleCache, output_format: str):
    """Entry counts and durable size."""
    stats = module_cache.stats()
    if output_format == "json":
        _echo_json(stats.to_dict())
        return
    click.echo(f"Memory entries: {stats.memory_entries}")
    click.echo(f"File entries:   {stats.file_entries}")
    click.echo(f"Size:           {stats.total_size_kb} KB")


@cache.command()
@click.pass_obj
def prune(module_cache: ModuleCache):
    """Remove expired entries."""
    removed = module_cache.prune()
    click.echo(f"Pruned {removed} expired entr{'y' if removed == 1 else 'ies'}.")


@cache.command()
@click.pass_obj
def clear(module_cache: ModuleCache):
    """Remove every entry."""
    module_cache.clear()
    click.echo("Cache cleared.")


def main():
    cli()


if __name__ == "__main__":
    main()
