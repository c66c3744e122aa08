"""autoplanner CLI: turn an email into a Planner task."""

import logging
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Annotated, NoReturn

import tomlkit
import typer
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from autoplanner.broker import CredentialBroker
from autoplanner.errors import AutoplannerError
from autoplanner.identity.entra import EntraIdentityProvider
from autoplanner.mail import EmlMailAccessor, draft_from_mail
from autoplanner.models import TaskDraft
from autoplanner.pipeline import TaskCreationPipeline
from autoplanner.resolver import ResourceResolver
from autoplanner.services.base import TaskService
from autoplanner.services.planner import PlannerService
from autoplanner.settings import CONFIG_PATH, AutoplannerSettings, _list_profiles, get_settings
from autoplanner.status import RichStatusSink, describe_assignees, describe_outcome, describe_plans

app = typer.Typer(help="autoplanner: create Microsoft Planner tasks from email", no_args_is_help=True)

console = Console()

ProfileOpt = Annotated[
    str | None,
    typer.Option("--profile", "-P", help="Profile name from ~/.config/autoplanner/config.toml"),
]

# Exit code for "task created, but a later step failed"
EXIT_PARTIAL = 2


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _setup_logging(settings: AutoplannerSettings, verbose: bool) -> None:
    level = logging.DEBUG if verbose else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def get_service(settings: AutoplannerSettings, login_hint: str | None = None) -> TaskService:
    broker = CredentialBroker(
        EntraIdentityProvider(settings),
        login_hint=settings.login_hint or login_hint,
        expiry_margin=timedelta(seconds=settings.expiry_margin_seconds),
    )
    return PlannerService(settings, broker)


def _load(ctx: typer.Context, profile: str | None) -> AutoplannerSettings:
    settings = get_settings(profile=profile)
    _setup_logging(settings, bool(ctx.obj and ctx.obj.get("verbose")))
    return settings


def _fail(sink: RichStatusSink, message: str) -> NoReturn:
    sink.set_status(message, is_error=True)
    raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.callback()
def main(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log every Graph and sign-in step")] = False,
) -> None:
    ctx.obj = {"verbose": verbose}


@app.command("plans")
def plans_cmd(ctx: typer.Context, profile: ProfileOpt = None) -> None:
    """List the Planner plans you can file tasks into."""
    settings = _load(ctx, profile)
    sink = RichStatusSink(console)
    sink.set_status("Loading your Planner plans...")
    try:
        listing = ResourceResolver(get_service(settings)).list_plans()
    except AutoplannerError as exc:
        _fail(sink, f"Error loading plans: {exc}")

    table = Table(title="My Plans")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Group", style="dim")
    for plan in listing.plans:
        table.add_row(plan.id, plan.title, plan.owner_group_id or "—")
    rprint(table)
    sink.set_status(describe_plans(listing))


@app.command("assignees")
def assignees_cmd(
    ctx: typer.Context,
    plan_id: Annotated[str, typer.Argument(help="Planner plan ID")],
    profile: ProfileOpt = None,
) -> None:
    """List who a task in the plan can be assigned to."""
    settings = _load(ctx, profile)
    sink = RichStatusSink(console)
    sink.set_status("Loading plan members...")
    try:
        assignees = ResourceResolver(get_service(settings)).list_assignees(plan_id)
    except AutoplannerError as exc:
        _fail(sink, f"Error loading members: {exc}")

    table = Table(title=f"Assignees for {plan_id}")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Source", style="dim")
    for candidate in assignees.candidates:
        table.add_row(candidate.id, candidate.display_name, candidate.origin.value)
    rprint(table)
    sink.set_status(describe_assignees(assignees), is_error=assignees.degraded)


@app.command("create-task")
def create_task(
    ctx: typer.Context,
    profile: ProfileOpt = None,
    plan: Annotated[str | None, typer.Option("--plan", "-p", help="Planner plan ID")] = None,
    title: Annotated[str | None, typer.Option("--title", "-t", help="Task title (default: email subject)")] = None,
    description: Annotated[
        str | None, typer.Option("--description", "-d", help="Task description (default: email body)")
    ] = None,
    eml: Annotated[Path | None, typer.Option("--eml", help="Email (.eml) to seed the task from", exists=True)] = None,
    due: Annotated[datetime | None, typer.Option("--due", formats=["%Y-%m-%d"], help="Due date YYYY-MM-DD")] = None,
    assignee: Annotated[str | None, typer.Option("--assignee", "-a", help="User ID to assign")] = None,
    bucket: Annotated[str | None, typer.Option("--bucket", "-b", help="Bucket ID")] = None,
    no_auto_bucket: Annotated[
        bool, typer.Option("--no-auto-bucket", help="Do not file into the plan's first bucket")
    ] = False,
) -> None:
    """Create a Planner task, optionally seeded from an email."""
    settings = _load(ctx, profile)
    sink = RichStatusSink(console)

    plan_id = plan or settings.default_plan_id or ""
    due_date = due.date() if due else None
    login_hint = None
    if eml:
        accessor = EmlMailAccessor(eml)
        login_hint = accessor.user_address
        seeded = draft_from_mail(accessor, plan_id, bucket_id=bucket, due_date=due_date, assignee_id=assignee)
        draft = seeded.model_copy(
            update={
                "title": title if title is not None else seeded.title,
                "description": description if description is not None else seeded.description,
            }
        )
    else:
        draft = TaskDraft(
            plan_id=plan_id,
            title=title or "",
            description=description,
            bucket_id=bucket,
            due_date=due_date,
            assignee_id=assignee,
        )

    pipeline = TaskCreationPipeline(
        get_service(settings, login_hint=login_hint),
        status=sink,
        auto_bucket=settings.auto_bucket and not no_auto_bucket,
    )
    try:
        task = pipeline.create_task(draft)
    except AutoplannerError as exc:
        _fail(sink, f"Failed to create task: {exc}")

    message, is_error = describe_outcome(task)
    rprint(f"[green]✓[/green] [bold]{task.id}[/bold] {task.title}")
    sink.set_status(message, is_error=is_error)
    if task.partial:
        raise typer.Exit(EXIT_PARTIAL)


@app.command("set-default")
def set_default(
    profile: Annotated[str, typer.Argument(help="Profile to sign in with by default")],
    client_id: Annotated[
        str | None, typer.Option("--client-id", help="Entra app registration (client) ID; creates the profile")
    ] = None,
    tenant: Annotated[str | None, typer.Option("--tenant", help="Tenant ID or domain (default: common)")] = None,
) -> None:
    """Make PROFILE the default, creating or updating its app registration.

    A profile is only accepted once it can sign in: it needs a client_id of its
    own, or AUTOPLANNER_CLIENT_ID in the environment.
    """
    doc = tomlkit.parse(CONFIG_PATH.read_text()) if CONFIG_PATH.exists() else tomlkit.document()
    profiles = _list_profiles(doc)
    section = doc[profile] if profile in profiles else None

    if section is None and not client_id:
        rprint(
            f"[red]Profile '{profile}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}. "
            "Pass --client-id to create it.[/red]"
        )
        raise typer.Exit(1)
    if not (client_id or (section and section.get("client_id")) or os.environ.get("AUTOPLANNER_CLIENT_ID")):
        rprint(f"[red]Profile '{profile}' has no client_id. Pass --client-id or set AUTOPLANNER_CLIENT_ID.[/red]")
        raise typer.Exit(1)

    doc["default_profile"] = profile
    created = section is None
    if created:
        section = tomlkit.table()
    if client_id:
        section["client_id"] = client_id
    if tenant:
        section["tenant"] = tenant
    if created:
        doc[profile] = section

    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text(tomlkit.dumps(doc))
    rprint(f'[green]✓[/green] Default profile set to "{profile}" in {CONFIG_PATH}')


@app.command("config-show")
def config_show(profile: ProfileOpt = None) -> None:
    """Show resolved configuration (masks the client ID)."""
    settings = get_settings(profile=profile)

    def mask(val: str | None) -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"...{val[-5:]}"

    unset = "[dim](not set)[/dim]"
    table = Table(title="autoplanner Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("default_profile", settings.default_profile or unset)
    table.add_row("client_id", mask(settings.client_id))
    table.add_row("tenant", settings.tenant)
    table.add_row("scopes", " ".join(settings.scopes))
    table.add_row("login_hint", settings.login_hint or unset)
    table.add_row("graph_base_url", settings.graph_base_url)
    table.add_row("default_plan_id", settings.default_plan_id or unset)
    table.add_row("auto_bucket", str(settings.auto_bucket))
    table.add_row("expiry_margin_seconds", str(settings.expiry_margin_seconds))

    rprint(table)
