"""Click CLI group: tests, query, insert and execute commands."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable
from pathlib import Path
from typing import TypeVar

import click

from apexcov.config import Credentials, Settings, get_settings, load_credentials, validate_settings
from apexcov.coverage.selector import Strategy
from apexcov.errors import ApexCovError, BatchError, CoverageDeficiencyError
from apexcov.logging import bind_context, clear_context, configure_logging
from apexcov.manifest import load_apex
from apexcov.sfapi.connection import Connection
from apexcov.sfapi.records import Record
from apexcov.sfapi.rest import collections_create, query
from apexcov.sfapi.tooling import ToolingClient

T = TypeVar("T")

config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=str),
    default="config.json",
    show_default=True,
    help="Path to the org credentials file.",
)


def _bootstrap(command: str) -> Settings:
    settings = get_settings()
    try:
        validate_settings(settings)
    except ApexCovError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging(settings.log_level, json_output=bool(int(settings.log_json)))
    clear_context()
    bind_context(command=command)
    return settings


def build_connection(credentials: Credentials, settings: Settings) -> Connection:
    return Connection(credentials, timeout_seconds=settings.http_timeout_seconds)


def _credentials(config_path: str) -> Credentials:
    try:
        return load_credentials(config_path)
    except ApexCovError as exc:
        raise click.ClickException(f"error reading config: {exc}") from exc


def _run(coro: Awaitable[T], settings: Settings) -> T:
    async def _bounded() -> T:
        return await asyncio.wait_for(coro, timeout=settings.operation_timeout_seconds)

    try:
        return asyncio.run(_bounded())
    except TimeoutError as exc:
        raise click.ClickException(
            f"operation timed out after {settings.operation_timeout_seconds:g}s"
        ) from exc


@click.group()
def cli() -> None:
    """Coverage gate and API helpers for Salesforce deployments."""


@cli.command("tests")
@config_option
@click.option(
    "--packages",
    default="package.xml",
    show_default=True,
    help="Comma-separated list of package.xml manifests.",
)
@click.option(
    "--strategy",
    default=None,
    help=(
        "MaxCoverage: tests covering the listed Apex. "
        "MaxCoverageWithDeps: also tests covering their dependencies. "
        "Defaults to APEXCOV_STRATEGY."
    ),
)
def tests_command(config_path: str, packages: str, strategy: str | None) -> None:
    """Print the tests to run for the Apex in the manifests, or fail the gate."""
    settings = _bootstrap("tests")
    try:
        selected_strategy = Strategy.parse(strategy or settings.strategy)
    except ApexCovError as exc:
        raise click.ClickException(str(exc)) from exc
    credentials = _credentials(config_path)
    try:
        classes, triggers = load_apex(packages)
    except ApexCovError as exc:
        raise click.ClickException(f"error reading apex from package: {exc}") from exc
    if not classes and not triggers:
        return

    client = ToolingClient(build_connection(credentials, settings))
    try:
        selected = _run(selected_strategy.select_tests(client, classes, triggers), settings)
    except CoverageDeficiencyError as exc:
        click.echo("coverage check failed:", err=True)
        for line in exc.deficiencies:
            click.echo(f"  {line}", err=True)
        sys.exit(1)
    except ApexCovError as exc:
        raise click.ClickException(f"error requesting coverage: {exc}") from exc
    click.echo(" ".join(selected))


@cli.command("query")
@config_option
@click.argument("soql")
def query_command(config_path: str, soql: str) -> None:
    """Run a SOQL query against the data API and print the records as JSON."""
    settings = _bootstrap("query")
    connection = build_connection(_credentials(config_path), settings)
    try:
        records = _run(query(connection, soql), settings)
    except ApexCovError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps([record.to_json() for record in records], indent=2))


@cli.command("insert")
@config_option
@click.option("--all-or-none", is_flag=True, help="Roll back a batch if any record in it fails.")
@click.argument("records_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def insert_command(config_path: str, all_or_none: bool, records_file: Path) -> None:
    """Create the records listed in a JSON file, 200 per concurrent batch."""
    settings = _bootstrap("insert")
    try:
        payload = json.loads(records_file.read_text(encoding="utf-8"))
        if not isinstance(payload, list):
            raise ValueError("expected a JSON list of records")
        records = [Record.from_json(item) for item in payload]
        untyped = [str(index) for index, record in enumerate(records) if not record.type]
        if untyped:
            raise ValueError(f"records without attributes.type: {', '.join(untyped)}")
    except ValueError as exc:
        raise click.ClickException(f"invalid records file {records_file}: {exc}") from exc

    connection = build_connection(_credentials(config_path), settings)
    responses, error = _run(
        collections_create(
            connection, records, all_or_none=all_or_none, batch_size=settings.batch_size
        ),
        settings,
    )
    summary = [
        {
            "batch": index,
            "created": sum(1 for item in batch if item.success),
            "failed": sum(1 for item in batch if not item.success),
            "ids": [item.id for item in batch if item.success],
        }
        for index, batch in enumerate(responses)
    ]
    click.echo(json.dumps(summary, indent=2))
    if isinstance(error, BatchError):
        click.echo(str(error), err=True)
        sys.exit(1)


@cli.command("execute")
@config_option
@click.argument("apex_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def execute_command(config_path: str, apex_file: Path) -> None:
    """Run a file of anonymous Apex through the tooling API."""
    settings = _bootstrap("execute")
    client = ToolingClient(build_connection(_credentials(config_path), settings))
    try:
        _run(client.execute_anonymous(apex_file.read_text(encoding="utf-8")), settings)
    except ApexCovError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo("executed successfully")


if __name__ == "__main__":
    cli()
