"""CLI entry point for gcp-emulator-control-plane.

Invoked as::

    gcp-emulator [OPTIONS] COMMAND [ARGS]...

or during development::

    python -m gcp_emulator_control_plane.cli.main

Commands
--------
- policy validate  Load a policy file and report every structural defect
- policy show      Summarise roles, groups and project bindings
- policy convert   Re-encode a policy file as YAML or JSON
- config show      Show resolved settings and where each value came from
- check            Run one permission check against the IAM emulator
- version          Show version information
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from gcp_emulator_control_plane.config.settings import (
    ConfigError,
    Settings,
    SettingsLoader,
    env_var_name,
)

console = Console()
err_console = Console(stderr=True)

_CONFIG_ERROR_EXIT = 2


def _configure_logging(trace: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if trace else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_settings(ctx: click.Context, **overrides: object) -> Settings:
    """Resolve settings for a command, exiting with status 2 on ConfigError."""
    obj: dict[str, object] = ctx.ensure_object(dict)
    loader = SettingsLoader()
    flags = {"trace": True if obj.get("trace") else None, **overrides}
    try:
        settings = loader.load(
            config_path=obj.get("config_path"),  # type: ignore[arg-type]
            overrides=flags,
        )
    except (ConfigError, FileNotFoundError) as exc:
        err_console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        sys.exit(_CONFIG_ERROR_EXIT)

    if settings.trace:
        logging.getLogger().setLevel(logging.DEBUG)
    obj["loader"] = loader
    return settings


# ---------------------------------------------------------------------------
# Root command group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="gcp-emulator-control-plane")
@click.option("--trace", is_flag=True, default=False, help="Enable debug logging.")
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(),
    help="Settings file (default: ./config.yaml, then ~/.gcp-emulator/config.yaml).",
)
@click.pass_context
def cli(ctx: click.Context, trace: bool, config_path: str | None) -> None:
    """GCP emulator control plane: IAM policy and authorization tools."""
    ctx.ensure_object(dict)
    ctx.obj["trace"] = trace
    ctx.obj["config_path"] = config_path
    _configure_logging(trace)


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from gcp_emulator_control_plane import __version__

    console.print(
        Panel(
            f"[bold]gcp-emulator-control-plane[/bold]  v[cyan]{__version__}[/cyan]\n"
            "IAM policy and authorization mediation for the GCP emulator stack.",
            title="Version",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# policy group
# ---------------------------------------------------------------------------


@cli.group(name="policy")
def policy_group() -> None:
    """IAM policy file commands."""


def _policy_path(ctx: click.Context, policy_file: str | None) -> Path:
    if policy_file is not None:
        return Path(policy_file)
    return _load_settings(ctx).policy_file


@policy_group.command(name="validate")
@click.option(
    "--file",
    "-f",
    "policy_file",
    default=None,
    type=click.Path(),
    help="Policy file (default: policy-file setting).",
)
@click.pass_context
def policy_validate_command(ctx: click.Context, policy_file: str | None) -> None:
    """Validate a policy file and list every defect found."""
    from gcp_emulator_control_plane.policy.codec import load
    from gcp_emulator_control_plane.policy.model import ParseError
    from gcp_emulator_control_plane.policy.validator import PolicyValidator

    path = _policy_path(ctx, policy_file)
    try:
        doc = load(path)
    except (ParseError, FileNotFoundError) as exc:
        err_console.print(f"[red]Parse error:[/red] {escape(str(exc))}")
        sys.exit(1)

    result = PolicyValidator().validate(doc)
    summary = doc.summary()

    if result.valid:
        console.print(
            Panel(
                f"[green]VALID[/green]  {escape(str(path))}\n"
                f"  Roles: {summary['roles']}  "
                f"Groups: {summary['groups']}  "
                f"Projects: {summary['projects']}  "
                f"Bindings: {summary['bindings']}",
                title="Policy Validation",
                border_style="green",
            )
        )
        return

    console.print(
        Panel(
            f"[red]INVALID[/red]  {escape(str(path))}: {result.error_count} error(s)",
            title="Policy Validation",
            border_style="red",
        )
    )
    for error in result.errors:
        console.print(f"  [red]•[/red] {escape(error)}")
    sys.exit(1)


@policy_group.command(name="show")
@click.option(
    "--file",
    "-f",
    "policy_file",
    default=None,
    type=click.Path(),
    help="Policy file (default: policy-file setting).",
)
@click.pass_context
def policy_show_command(ctx: click.Context, policy_file: str | None) -> None:
    """Summarise the roles, groups and bindings in a policy file."""
    from gcp_emulator_control_plane.policy.codec import load
    from gcp_emulator_control_plane.policy.model import ParseError

    path = _policy_path(ctx, policy_file)
    try:
        doc = load(path)
    except (ParseError, FileNotFoundError) as exc:
        err_console.print(f"[red]Parse error:[/red] {escape(str(exc))}")
        sys.exit(1)

    roles = Table(title="Roles", box=box.SIMPLE)
    roles.add_column("Role", style="cyan")
    roles.add_column("Permissions")
    for name, role in doc.roles.items():
        roles.add_row(name, "\n".join(role.permissions))
    console.print(roles)

    groups = Table(title="Groups", box=box.SIMPLE)
    groups.add_column("Group", style="cyan")
    groups.add_column("Members")
    for name, group in doc.groups.items():
        groups.add_row(name, "\n".join(group.members))
    console.print(groups)

    bindings = Table(title="Bindings", box=box.SIMPLE)
    bindings.add_column("Project", style="cyan")
    bindings.add_column("Role", style="magenta")
    bindings.add_column("Members")
    bindings.add_column("Condition", style="dim")
    for project_id, _, binding in doc.iter_bindings():
        condition = ""
        if binding.condition is not None:
            condition = binding.condition.title or binding.condition.expression
        bindings.add_row(project_id, binding.role, "\n".join(binding.members), condition)
    console.print(bindings)


@policy_group.command(name="convert")
@click.option(
    "--file",
    "-f",
    "policy_file",
    required=True,
    type=click.Path(exists=True),
    help="Source policy file.",
)
@click.option(
    "--output",
    "-o",
    "output_file",
    required=True,
    type=click.Path(),
    help="Destination; the extension selects YAML or JSON.",
)
def policy_convert_command(policy_file: str, output_file: str) -> None:
    """Re-encode a policy file in the format given by the output extension."""
    from gcp_emulator_control_plane.policy.codec import load, save
    from gcp_emulator_control_plane.policy.model import ParseError

    try:
        doc = load(policy_file)
    except ParseError as exc:
        err_console.print(f"[red]Parse error:[/red] {escape(str(exc))}")
        sys.exit(1)

    try:
        save(doc, output_file)
    except OSError as exc:
        err_console.print(f"[red]Write error:[/red] {escape(str(exc))}")
        sys.exit(1)

    console.print(
        f"[green]Converted[/green] {escape(policy_file)} -> [bold]{escape(output_file)}[/bold]"
    )


# ---------------------------------------------------------------------------
# config group
# ---------------------------------------------------------------------------


@cli.group(name="config")
def config_group() -> None:
    """Settings commands."""


@config_group.command(name="show")
@click.pass_context
def config_show_command(ctx: click.Context) -> None:
    """Show resolved settings and the layer that supplied each value."""
    settings = _load_settings(ctx)
    loader: SettingsLoader = ctx.obj["loader"]
    sources = loader.sources

    rows = [
        ("iam-mode", settings.iam_mode.value),
        ("trace", str(settings.trace).lower()),
        ("pull-on-start", str(settings.pull_on_start).lower()),
        ("policy-file", str(settings.policy_file)),
        ("authority-url", settings.authority_url),
        ("authority-timeout", f"{settings.authority_timeout_seconds:g}"),
        ("port-iam", str(settings.ports.iam)),
        ("port-secret-manager", str(settings.ports.secret_manager)),
        ("port-kms", str(settings.ports.kms)),
    ]

    table = Table(title="Configuration", box=box.SIMPLE)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_column("Source", style="dim")
    table.add_column("Env var", style="dim")
    for key, value in rows:
        table.add_row(key, escape(value), escape(sources.get(key, "default")), env_var_name(key))
    console.print(table)
    console.print(f"  Config file: [cyan]{escape(str(loader.config_file or '(not found)'))}[/cyan]")


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@cli.command(name="check")
@click.option("--principal", "-p", default="", help="Principal, e.g. user:alice@example.com.")
@click.option("--resource", "-r", required=True, help="Full resource name.")
@click.option("--permission", "-P", "permission", required=True, help="Permission to test.")
@click.option(
    "--mode",
    "-m",
    default=None,
    help="IAM mode override (off|permissive|strict).",
)
@click.option("--timeout", "-t", default=None, type=float, help="Authority timeout in seconds.")
@click.pass_context
def check_command(
    ctx: click.Context,
    principal: str,
    resource: str,
    permission: str,
    mode: str | None,
    timeout: float | None,
) -> None:
    """Run one permission check through the mediator against the IAM emulator."""
    from gcp_emulator_control_plane.authz.authority import HttpAuthorityClient
    from gcp_emulator_control_plane.authz.mediator import Outcome, PermissionMediator

    settings = _load_settings(ctx, **{"iam-mode": mode, "authority-timeout": timeout})
    authority = HttpAuthorityClient(
        settings.authority_url, timeout_seconds=settings.authority_timeout_seconds
    )
    mediator = PermissionMediator.from_settings(settings, authority)
    decision = mediator.check(principal, resource, permission)

    styles = {
        Outcome.ALLOW: "[green]ALLOW[/green]",
        Outcome.PERMISSION_DENIED: "[red]DENY: permission denied[/red]",
        Outcome.AUTHORITY_UNAVAILABLE: "[red]DENY: authority unavailable[/red]",
    }
    console.print(Panel(styles[decision.outcome], title="Permission Check", border_style="blue"))
    console.print(f"  Mode: [cyan]{decision.mode.value}[/cyan]")
    console.print(f"  Principal: {escape(decision.principal or '(none)')}")
    console.print(f"  Reason: {escape(decision.reason)}")

    sys.exit(0 if decision.allowed else 1)


if __name__ == "__main__":
    cli()
