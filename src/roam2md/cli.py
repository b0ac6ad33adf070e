"""roam2md CLI — migrate an org-roam graph into a flat Markdown vault.

Commands:
    roam2md init                     write a roam2md.toml
    roam2md plan                     show target names, roles, and export state
    roam2md patch                    rewrite [[id:...]] links in the .org files
    roam2md export                   render every node not yet exported
    roam2md migrate                  patch, then export (the usual entry point)

Every command is safe to repeat: exported notes are skipped, patched links
are left alone. A render failure stops the run; fix the cause and rerun.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click

from roam2md.config import Roam2mdConfig, init_config, load_config
from roam2md.errors import MigrationError, RenderFailure
from roam2md.export import Exporter
from roam2md.graph import load_graph
from roam2md.identity import IdentityResolver
from roam2md.patcher import patcher_for
from roam2md.renderer import EmacsRenderer

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from roam2md.graph import Graph
    from roam2md.models import ExportReport, Node, PatchReport, TargetIdentity

logger = logging.getLogger("roam2md.cli")

_BACKUP_PROMPT = "This will rewrite links in your org-roam files. Make sure you have a backup. Continue?"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _cfg(ctx: click.Context) -> Roam2mdConfig:
    return ctx.find_object(Roam2mdConfig)  # type: ignore[return-value]


def _fail(exc: MigrationError) -> NoReturn:
    """Print the abort reason (and partial progress) and exit 1."""
    report: ExportReport | None = getattr(exc, "report", None)
    if isinstance(exc, RenderFailure):
        click.secho(f"Failed to export {exc.title!r} ({exc.node_id}):", fg="red", err=True)
        click.echo(exc.detail, err=True)
    else:
        click.secho(f"Error: {exc}", fg="red", err=True)
    if report is not None:
        click.echo(
            f"Stopped after {len(report.exported)} exported, {len(report.skipped)} skipped. "
            "Rerun to resume.",
            err=True,
        )
    raise SystemExit(1) from exc


def _require(value: Path | None, option: str) -> Path:
    if value is None:
        msg = f"missing {option} (pass it or set it in roam2md.toml)"
        raise click.UsageError(msg)
    return value


def _prepare(cfg: Roam2mdConfig, db: Path) -> tuple[Graph, Mapping[str, TargetIdentity]]:
    """Load the whole graph and resolve every identity before any side effect."""
    click.echo("Collecting nodes…")
    graph = load_graph(db)
    identities = IdentityResolver(
        graph, cfg.replacements, max_length=cfg.export.max_name_length
    ).mapping
    logger.debug("resolved %d identities from %s", len(identities), db)
    return graph, identities


def _renderer(cfg: Roam2mdConfig, timeout: float | None) -> EmacsRenderer:
    return EmacsRenderer(
        emacs=cfg.render.emacs,
        init_file=cfg.render.init_file or None,
        timeout=timeout if timeout is not None else cfg.render.timeout,
        backend=cfg.render.backend,
        requires=cfg.render.requires,
    )


def _run_export(
    cfg: Roam2mdConfig,
    graph: Graph,
    identities: Mapping[str, TargetIdentity],
    target_dir: Path,
    timeout: float | None,
    limit: int | None,
) -> ExportReport:
    from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeRemainingColumn

    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
        transient=True,
    ) as progress:
        task = progress.add_task("Exporting nodes", total=len(graph))

        def _advance(node: Node, status: str) -> None:
            progress.update(task, advance=1, description=f"Exporting {node.title[:40]}")

        exporter = Exporter(
            _renderer(cfg, timeout),
            target_dir,
            frontmatter=cfg.export.frontmatter,
            limit=limit,
            on_node=_advance,
        )
        return exporter.run(graph, identities)


def _print_patch(report: PatchReport, dry_run: bool = False) -> None:
    verb = "would rewrite" if dry_run else "rewrote"
    click.echo(
        f"Patched {report.documents_scanned} documents: {verb} {report.rewritten} links "
        f"in {report.documents_written if not dry_run else '-'} files, "
        f"{report.already_patched} already converted"
    )
    if report.missing:
        click.secho(f"{len(report.missing)} documents listed in the database are missing:", fg="yellow")
        for file in report.missing:
            click.echo(f"  {file}")
    if report.broken:
        click.secho(f"{len(report.broken)} broken links left unchanged (fix by hand):", fg="yellow")
        for link in report.broken:
            click.echo(f"  {link.describe()}")


def _print_export(report: ExportReport) -> None:
    parts = [f"Exported {len(report.exported)}", f"skipped {len(report.skipped)}"]
    if report.pending:
        parts.append(f"{len(report.pending)} left for the next run")
    click.echo(", ".join(parts))


def _db_option(f: Callable) -> Callable:
    f = click.option("--db", type=click.Path(path_type=Path), default=None,
                     help="org-roam database (org-roam.db)")(f)
    return f


def _target_option(f: Callable) -> Callable:
    f = click.option("--target-dir", "-t", type=click.Path(file_okay=False, path_type=Path),
                     default=None, help="Directory receiving the Markdown notes")(f)
    return f


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="roam2md")
@click.option("--config", "config_root", type=click.Path(file_okay=False, path_type=Path),
              default=None, help="Directory containing roam2md.toml")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, config_root: Path | None, verbose: bool) -> None:
    """roam2md — export an org-roam graph to Markdown notes."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(message)s",
    )
    try:
        ctx.obj = load_config(config_root)
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


# ---------------------------------------------------------------------------
# roam2md init
# ---------------------------------------------------------------------------


@cli.command()
@_db_option
@_target_option
@click.option("--dir", "root", default=".", show_default=True, help="Where to write roam2md.toml")
def init(db: Path | None, target_dir: Path | None, root: str) -> None:
    """Write a default roam2md.toml."""
    try:
        path = init_config(Path(root).resolve(), db=str(db or ""), target_dir=str(target_dir or ""))
    except FileExistsError:
        click.echo("roam2md.toml already exists — skipping init")
        return
    click.echo(f"Created {path}")


# ---------------------------------------------------------------------------
# roam2md plan
# ---------------------------------------------------------------------------


@cli.command()
@_db_option
@_target_option
@click.pass_context
def plan(ctx: click.Context, db: Path | None, target_dir: Path | None) -> None:
    """Show each node's target file and whether it is already exported."""
    from rich.console import Console
    from rich.markup import escape as _markup_escape
    from rich.table import Table

    cfg = _cfg(ctx)
    db = _require(db or cfg.db, "--db")
    target_dir = target_dir or cfg.target_dir
    try:
        graph, identities = _prepare(cfg, db)
    except MigrationError as exc:
        _fail(exc)

    table = Table(title=f"{len(graph)} nodes", show_header=True, header_style="bold")
    table.add_column("Title", no_wrap=True)
    table.add_column("Target")
    table.add_column("Role", style="dim")
    table.add_column("State", justify="right")

    exporter = Exporter(_renderer(cfg, None), target_dir) if target_dir is not None else None
    done = 0
    for node in graph.ordered():
        identity = identities[node.id]
        if exporter is None:
            state = "[dim]?[/dim]"
        elif exporter.is_exported(identity):
            state = "[green]exported[/green]"
            done += 1
        else:
            state = "[yellow]pending[/yellow]"
        table.add_row(_markup_escape(node.title), _markup_escape(identity.path), node.role, state)

    console = Console()
    console.print(table)
    if target_dir is not None:
        console.print(f"{done} exported, {len(graph) - done} pending")
    if graph.broken:
        console.print(f"[yellow]{len(graph.broken)} links in the database point at unknown ids:[/yellow]")
        for link in graph.broken:
            console.print(f"  {link.describe()}", markup=False, soft_wrap=True)


# ---------------------------------------------------------------------------
# roam2md patch
# ---------------------------------------------------------------------------


@cli.command()
@_db_option
@click.option("--dry-run", is_flag=True, help="Report what would change without writing")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def patch(ctx: click.Context, db: Path | None, dry_run: bool, yes: bool) -> None:
    """Rewrite [[id:...]] links in the .org files to point at the Markdown notes."""
    cfg = _cfg(ctx)
    db = _require(db or cfg.db, "--db")
    if not (dry_run or yes):
        click.confirm(_BACKUP_PROMPT, abort=True)
    try:
        graph, identities = _prepare(cfg, db)
        report = patcher_for(graph, identities).patch(graph, dry_run=dry_run)
    except MigrationError as exc:
        _fail(exc)
    _print_patch(report, dry_run=dry_run)


# ---------------------------------------------------------------------------
# roam2md export
# ---------------------------------------------------------------------------


@cli.command()
@_db_option
@_target_option
@click.option("--timeout", type=float, default=None, help="Seconds before a hung emacs is killed")
@click.option("--limit", type=int, default=None, help="Render at most N nodes this run")
@click.pass_context
def export(ctx: click.Context, db: Path | None, target_dir: Path | None,
           timeout: float | None, limit: int | None) -> None:
    """Render every node that has no Markdown file yet."""
    cfg = _cfg(ctx)
    db = _require(db or cfg.db, "--db")
    target_dir = _require(target_dir or cfg.target_dir, "--target-dir")
    try:
        graph, identities = _prepare(cfg, db)
        report = _run_export(cfg, graph, identities, target_dir, timeout, limit)
    except MigrationError as exc:
        _fail(exc)
    _print_export(report)


# ---------------------------------------------------------------------------
# roam2md migrate
# ---------------------------------------------------------------------------


@cli.command()
@_db_option
@_target_option
@click.option("--timeout", type=float, default=None, help="Seconds before a hung emacs is killed")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def migrate(ctx: click.Context, db: Path | None, target_dir: Path | None,
            timeout: float | None, yes: bool) -> None:
    """Patch links in place, then export every node (resumable)."""
    cfg = _cfg(ctx)
    db = _require(db or cfg.db, "--db")
    target_dir = _require(target_dir or cfg.target_dir, "--target-dir")
    if not yes:
        click.confirm(_BACKUP_PROMPT, abort=True)

    try:
        graph, identities = _prepare(cfg, db)
        patch_report = patcher_for(graph, identities).patch(graph)
        _print_patch(patch_report)
        export_report = _run_export(cfg, graph, identities, target_dir, timeout, None)
    except MigrationError as exc:
        _fail(exc)

    _print_export(export_report)
    click.echo(
        f"Done: {len(export_report.exported)} exported, {len(export_report.skipped)} skipped, "
        f"{len(patch_report.broken)} broken links"
    )


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
