"""CLI tools for case study administration."""

import logging
import sys

import click

from case_study_engine.core.async_utils import run_async
from case_study_engine.core.config import settings
from case_study_engine.core.errors import LifecycleError
from case_study_engine.services import listing_service
from case_study_engine.services.lifecycle_service import build_engine


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _run(action):
    """Run an engine action, turning lifecycle errors into a message and exit code 1."""

    async def _main():
        return await action(build_engine())

    try:
        return run_async(_main())
    except LifecycleError as e:
        click.echo(f"❌ {type(e).__name__}: {e}", err=True)
        sys.exit(1)


def _parse_label_filters(values: tuple[str, ...]) -> dict[str, str]:
    filters: dict[str, str] = {}
    for item in values:
        category, sep, value = item.partition("=")
        if not sep or not category or not value:
            raise click.BadParameter(f"expected CATEGORY=VALUE, got {item!r}", param_hint="--label")
        filters[category] = value
    return filters


@click.group()
def cli():
    """Case study CLI tools."""
    _configure_logging()


@cli.command("list")
@click.option("--search", default=None, help="Text to search in titles, content and labels")
@click.option("--status", default=None, help="Only show case studies with this status")
@click.option("--label", "labels", multiple=True, help="Label filter as CATEGORY=VALUE (repeatable)")
@click.option("--page", default=1, show_default=True, help="Page number (1-indexed)")
@click.option("--per-page", default=10, show_default=True, help="Results per page")
@click.option("--refresh", is_flag=True, help="Resync the listing from storage first")
def list_case_studies(search, status, labels, page, per_page, refresh):
    """
    List case studies.

    Example:
        case-study-engine list --search lakehouse --label region=UK
    """
    label_filters = _parse_label_filters(labels)

    async def _list(engine):
        if refresh:
            await engine.cache.refresh()
        return await listing_service.search_case_studies(
            engine.cache,
            search=search,
            label_filters=label_filters,
            status=status,
            page=page,
            per_page=per_page,
        )

    result = _run(_list)
    if not result.items:
        click.echo("No case studies found")
        return
    for item in result.items:
        created = item.created_at.strftime("%Y-%m-%d") if item.created_at else "-"
        click.echo(f"{item.folder_name:<50}  {item.status:<9}  {created}  {item.title}")
    click.echo(f"Page {result.page}/{result.pages} ({result.total} total)")


@cli.command()
@click.option("--all", "include_closed", is_flag=True, help="Include drafts already approved or rejected")
def drafts(include_closed: bool):
    """List drafts, most recently updated first."""
    items = _run(lambda engine: engine.list_drafts(include_closed=include_closed))
    if not items:
        click.echo("No drafts found")
        return
    for draft in items:
        click.echo(f"{draft.id}  {draft.status:<12}  {draft.updated_at:%Y-%m-%d %H:%M}  {draft.title}")


def _echo_decision(result) -> None:
    case_study = result.case_study
    click.echo(f"✓ Case study {case_study.folder_name} is {case_study.status}")
    if not result.draft_status_updated:
        click.echo("  ⚠ Draft status could not be updated")
    if result.comments_copied is None:
        click.echo("  ⚠ Review comments were not copied")
    elif result.comments_copied:
        click.echo(f"  Copied {result.comments_copied} review comments")
    if not result.draft_deleted:
        click.echo("  ⚠ Draft could not be deleted; remove it manually")


@cli.command()
@click.argument("draft_id")
def approve(draft_id: str):
    """Approve a draft and convert it into a case study."""
    _echo_decision(_run(lambda engine: engine.approve(draft_id)))


@cli.command()
@click.argument("draft_id")
def reject(draft_id: str):
    """Reject a draft; the rejected case study is kept for reference."""
    _echo_decision(_run(lambda engine: engine.reject(draft_id)))


@cli.command()
@click.argument("folder_name")
def publish(folder_name: str):
    """Publish an approved case study."""
    published = _run(lambda engine: engine.publish(folder_name))
    click.echo(f"✓ Published {published.folder_name}")


@cli.command()
@click.option("--init", "initialize", is_flag=True, help="Seed the default catalog if none is stored")
@click.option("--reset", is_flag=True, help="Overwrite the stored catalog with the defaults")
def labels(initialize: bool, reset: bool):
    """Show the label catalog."""

    async def _labels(engine):
        if reset:
            return await engine.catalog.reset()
        if initialize:
            return await engine.catalog.initialize()
        return await engine.catalog.get_catalog()

    catalog = _run(_labels)
    for category, values in catalog.items():
        click.echo(f"{category} ({len(values)})")
        for value in values:
            click.echo(f"  - {value}")


@cli.command()
@click.argument("folder_name")
@click.option("--add", "comment", default=None, help="Add a review comment")
@click.option("--author", default=None, help="Comment author (default: Anonymous)")
def comments(folder_name: str, comment: str | None, author: str | None):
    """Show (or add to) the review thread of a case study."""

    async def _comments(engine):
        if comment is not None:
            await engine.reviews.add_case_study_comment(folder_name, comment, author)
        return await engine.reviews.get_case_study_comments(folder_name)

    thread = _run(_comments)
    if not thread:
        click.echo(f"No review comments for {folder_name}")
        return
    for item in thread:
        click.echo(f"[{item.timestamp:%Y-%m-%d %H:%M}] {item.author}: {item.comment}")


if __name__ == "__main__":
    cli()
