# src/sitepulse/cli.py
"""sitepulse Command Line Interface.

Operate the analytics pipeline from scripts and terminals: record events,
manage consent and identity state, and inspect event classification.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from sitepulse import __version__
from sitepulse.analytics.billing import calculate_billing_amount
from sitepulse.analytics.categories import resolve_category
from sitepulse.analytics.context import PipelineContext
from sitepulse.analytics.errors import SinkConfigurationError
from sitepulse.analytics.factory import create_analytics_client
from sitepulse.contracts.enums import EventName
from sitepulse.core.config import AnalyticsSettings, load_settings
from sitepulse.core.enrichment import ClientEnvironment, hash_ip

__all__ = [
    "app",
]

app = typer.Typer(
    name="sitepulse",
    help="sitepulse: client-resident analytics pipeline.",
    no_args_is_help=True,
)
consent_app = typer.Typer(help="Inspect and change stored consent.", no_args_is_help=True)
identity_app = typer.Typer(help="Inspect and reset stored identity.", no_args_is_help=True)
app.add_typer(consent_app, name="consent")
app.add_typer(identity_app, name="identity")

SETTINGS_OPTION = typer.Option(None, "--settings", "-s", help="Path to settings YAML file.")
STATE_DIR_OPTION = typer.Option(None, "--state-dir", help="Directory holding long-lived identity and consent state.")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"sitepulse version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Raises:
        typer.Exit: If an explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)
    return load_dotenv(override=False)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(False, "--no-dotenv", help="Skip loading .env file."),
    env_file: Path | None = typer.Option(None, "--env-file", help="Path to .env file (skips automatic search)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose/debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Output structured JSON logs."),
) -> None:
    """sitepulse: client-resident analytics pipeline."""
    from sitepulse.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "WARNING")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


def _load_settings_or_exit(settings_path: Path | None) -> AnalyticsSettings:
    if settings_path is None:
        return AnalyticsSettings()
    try:
        return load_settings(settings_path)
    except FileNotFoundError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None
    except (YamlParserError, YamlScannerError) as e:
        typer.secho(f"Error: invalid YAML in {settings_path}: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _build_context(
    settings: AnalyticsSettings,
    state_dir: Path | None,
    client_environment: ClientEnvironment | None = None,
) -> PipelineContext:
    return PipelineContext.from_settings(settings, storage_dir=state_dir, client_environment=client_environment)


def _parse_prop(raw: str) -> tuple[str, Any]:
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise typer.BadParameter(f"expected KEY=VALUE, got {raw!r}", param_hint="--prop")
    try:
        return key, json.loads(value)
    except json.JSONDecodeError:
        return key, value


@app.command()
def track(
    event_name: str = typer.Argument(..., help="Event name, e.g. map_search."),
    prop: list[str] = typer.Option([], "--prop", "-p", help="Event property as KEY=VALUE (JSON values allowed)."),
    content_id: str | None = typer.Option(None, "--content-id", help="Content item the event relates to."),
    workflow_item_id: str | None = typer.Option(None, "--workflow-item-id", help="Workflow item the event relates to."),
    organization_id: str | None = typer.Option(None, "--organization-id", help="Organization the event relates to."),
    user_id: str | None = typer.Option(None, "--user-id", help="Known user id."),
    page_url: str | None = typer.Option(None, "--page-url", help="Page URL to enrich the event with."),
    user_agent: str = typer.Option("", "--user-agent", help="User agent to enrich the event with."),
    settings_path: Path | None = SETTINGS_OPTION,
    state_dir: Path | None = STATE_DIR_OPTION,
) -> None:
    """Record one event through every enabled sink."""
    properties = dict(_parse_prop(raw) for raw in prop)
    settings = _load_settings_or_exit(settings_path)
    environment = ClientEnvironment(user_agent=user_agent, page_url=page_url) if page_url or user_agent else None
    context = _build_context(settings, state_dir, environment)

    try:
        client = create_analytics_client(settings, context=context)
    except SinkConfigurationError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None

    async def _run() -> dict[str, Any]:
        await client.track_event(
            event_name,
            properties=properties,
            user_id=user_id,
            content_id=content_id,
            workflow_item_id=workflow_item_id,
            organization_id=organization_id,
        )
        await client.aclose()
        return client.health_metrics

    metrics = asyncio.run(_run())
    if metrics["events_blocked_no_consent"]:
        typer.secho("Event not recorded: analytics consent has not been granted.", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(1)
    if metrics["events_skipped_disabled"]:
        typer.secho("Event not recorded: analytics is disabled.", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(1)
    typer.echo(f"Recorded {event_name} ({resolve_category(event_name)})")


@app.command()
def category(event_name: str = typer.Argument(..., help="Event name to classify.")) -> None:
    """Show the category and billing rate of an event name."""
    known = event_name in {name.value for name in EventName}
    typer.echo(f"{event_name}: {resolve_category(event_name)}" + ("" if known else " (unrecognised)"))
    amount = calculate_billing_amount(event_name)
    if amount:
        typer.echo(f"billable: {amount}")


@app.command("hash-ip")
def hash_ip_command(ip: str = typer.Argument(..., help="IP address to pseudonymise.")) -> None:
    """Print the one-way pseudonym stored for an IP address."""
    typer.echo(hash_ip(ip))


def _echo_consent(context: PipelineContext) -> None:
    state = context.consent.get_consent_state()
    typer.echo(f"analytics: {'granted' if state.has_analytics_consent else 'denied'}")
    typer.echo(f"marketing: {'granted' if state.has_marketing_consent else 'denied'}")
    typer.echo(f"choice made: {'yes' if context.consent.has_consent_choice() else 'no'}")
    if state.consent_timestamp is not None:
        typer.echo(f"updated: {state.consent_timestamp}")


@consent_app.command("show")
def consent_show(settings_path: Path | None = SETTINGS_OPTION, state_dir: Path | None = STATE_DIR_OPTION) -> None:
    """Show stored consent."""
    _echo_consent(_build_context(_load_settings_or_exit(settings_path), state_dir))


@consent_app.command("accept-all")
def consent_accept_all(settings_path: Path | None = SETTINGS_OPTION, state_dir: Path | None = STATE_DIR_OPTION) -> None:
    """Grant analytics and marketing consent."""
    context = _build_context(_load_settings_or_exit(settings_path), state_dir)
    context.consent.accept_all_consent()
    _echo_consent(context)


@consent_app.command("analytics-only")
def consent_analytics_only(settings_path: Path | None = SETTINGS_OPTION, state_dir: Path | None = STATE_DIR_OPTION) -> None:
    """Grant analytics consent only."""
    context = _build_context(_load_settings_or_exit(settings_path), state_dir)
    context.consent.accept_analytics_only()
    _echo_consent(context)


@consent_app.command("reject")
def consent_reject(settings_path: Path | None = SETTINGS_OPTION, state_dir: Path | None = STATE_DIR_OPTION) -> None:
    """Deny all consent."""
    context = _build_context(_load_settings_or_exit(settings_path), state_dir)
    context.consent.reject_all_consent()
    _echo_consent(context)


@consent_app.command("clear")
def consent_clear(settings_path: Path | None = SETTINGS_OPTION, state_dir: Path | None = STATE_DIR_OPTION) -> None:
    """Forget the consent choice entirely."""
    context = _build_context(_load_settings_or_exit(settings_path), state_dir)
    context.consent.clear_consent()
    _echo_consent(context)


@identity_app.command("show")
def identity_show(settings_path: Path | None = SETTINGS_OPTION, state_dir: Path | None = STATE_DIR_OPTION) -> None:
    """Show the anonymous id (created on first use)."""
    context = _build_context(_load_settings_or_exit(settings_path), state_dir)
    typer.echo(f"anonymous id: {context.identity.get_anonymous_id()}")


@identity_app.command("forget")
def identity_forget(settings_path: Path | None = SETTINGS_OPTION, state_dir: Path | None = STATE_DIR_OPTION) -> None:
    """Delete the stored anonymous id and session."""
    context = _build_context(_load_settings_or_exit(settings_path), state_dir)
    context.identity.clear_anonymous_id()
    context.identity.clear_session()
    typer.echo("identity cleared")


if __name__ == "__main__":
    app()
