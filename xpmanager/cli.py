"""Click CLI entry point for xpmanager."""

from __future__ import annotations

import json
import sys

import click

from xpmanager.config import Settings
from xpmanager.db import Database
from xpmanager.errors import XPError
from xpmanager.logging import configure_logging
from xpmanager.models.experiment import ExperimentStatus, ExperimentTier
from xpmanager.models.filters import ExperimentFilter


def _get_db(settings: Settings) -> Database:
    settings.ensure_data_dir()
    db = Database(
        settings.db_path,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
    db.init_schema()
    return db


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """xpmanager: experiment management with orthogonality checks."""
    ctx.ensure_object(dict)
    settings = Settings()
    log_level = "DEBUG" if verbose else settings.log_level
    configure_logging(log_level=log_level, log_format=settings.log_format)
    ctx.obj["settings"] = settings


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the database schema."""
    settings = ctx.obj["settings"]
    db = _get_db(settings)
    db.close()
    click.echo(f"Database ready at {settings.db_path}")


@cli.command("list")
@click.argument("project_id", type=int)
@click.option(
    "--status",
    type=click.Choice([s.value for s in ExperimentStatus]),
    default=None,
    help="Only experiments with this stored status",
)
@click.option(
    "--tier",
    type=click.Choice([t.value for t in ExperimentTier]),
    default=None,
    help="Only experiments in this tier",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_cmd(
    ctx: click.Context, project_id: int, status: str | None, tier: str | None, as_json: bool
) -> None:
    """List every experiment of a project."""
    from xpmanager.api.app import build_services

    settings = ctx.obj["settings"]
    db = _get_db(settings)
    try:
        experiments_service, projects_service = build_services(db, settings)
        project = projects_service.get_settings(project_id)
        experiments = experiments_service.list_all_experiments(
            project,
            ExperimentFilter(
                status=ExperimentStatus(status) if status else None,
                tier=ExperimentTier(tier) if tier else None,
            ),
        )
    except XPError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    finally:
        db.close()

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in experiments], indent=2))
        return
    if not experiments:
        click.echo("No experiments found.")
        return
    click.echo(f"{'ID':>5}  {'Name':<30} {'Tier':<9} {'Status':<12} {'Window'}")
    click.echo("-" * 100)
    for exp in experiments:
        window = f"{exp.start_time:%Y-%m-%d %H:%M} -> {exp.end_time:%Y-%m-%d %H:%M}"
        click.echo(
            f"{exp.id:>5}  {exp.name[:30]:<30} {exp.tier.value:<9} "
            f"{exp.status_friendly().value:<12} {window}"
        )


@cli.command("validate-project")
@click.argument("project_id", type=int)
@click.pass_context
def validate_project(ctx: click.Context, project_id: int) -> None:
    """Re-check segmenters and orthogonality of every active experiment."""
    from xpmanager.api.app import build_services

    settings = ctx.obj["settings"]
    db = _get_db(settings)
    try:
        experiments_service, projects_service = build_services(db, settings)
        checked = experiments_service.validate_project(projects_service.get_settings(project_id))
    except XPError as exc:
        click.echo(f"Validation failed: {exc}", err=True)
        sys.exit(1)
    finally:
        db.close()
    click.echo(f"Project {project_id}: {checked} active experiments are orthogonal.")


@cli.command()
def serve() -> None:
    """Run the HTTP API."""
    from xpmanager.api.app import main

    main()
