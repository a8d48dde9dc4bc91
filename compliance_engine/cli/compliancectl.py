#!/usr/bin/env python3
"""
Compliance Control CLI - Command Line Interface for the Compliance Engine.

Provides commands for running the notify, audit and reconcile actions,
inspecting the effective policy and viewing the audit trail.
"""

import json
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..audit import AuditLogger
from ..connectors import BaseConnector, ConnectorError, RetryPolicy, _get_connector_class
from ..engine import CompliancePolicy, load_policy
from ..models import ActionMode, RunResult, utcnow
from ..workflows import NotifyWorkflow, ReconcileWorkflow, create_run_summary

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()


class ComplianceController:
    """Builds the policy, connector and workflows for one invocation."""

    def __init__(self, policy: CompliancePolicy, token: Optional[str] = None,
                 mock_state: Optional[str] = None, audit_dir: Optional[str] = None):
        self.policy = policy
        self.token = token
        self.mock_state = Path(mock_state) if mock_state else None
        self.audit_logger = AuditLogger(audit_dir) if audit_dir else None
        self.connector = self._build_connector()

    def _build_connector(self) -> BaseConnector:
        config: Dict[str, Any] = {
            "organization": self.policy.organization,
            "repository": self.policy.repository,
        }

        if self.mock_state:
            with open(self.mock_state, encoding='utf-8') as f:
                state = json.load(f)
            if not isinstance(state, dict):
                raise ValueError(f"{self.mock_state} must contain a JSON object")
            logger.info(f"Using mock state from {self.mock_state}")
            return _get_connector_class(mock=True).from_state(state, config)

        if not self.token:
            raise click.UsageError("A GitHub token is required (--token or GITHUB_TOKEN)")
        config["token"] = self.token
        return _get_connector_class(mock=False)(config, retry_policy=RetryPolicy())

    def run(self, action: ActionMode) -> RunResult:
        """Run one action and return its result."""
        if action == ActionMode.RECONCILE:
            workflow = ReconcileWorkflow(self.connector, self.policy, self.audit_logger)
        else:
            workflow = NotifyWorkflow(self.connector, self.policy, self.audit_logger,
                                      audit_only=(action == ActionMode.AUDIT))
        return workflow.execute()


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def cli(verbose):
    """Compliance Engine Control CLI - verified domain email enforcement"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


@cli.command()
@click.option('--action', '-a', required=True,
              type=click.Choice([m.value for m in ActionMode]), help='Action to run')
@click.option('--org', help='Target organization')
@click.option('--repo', help='Repository holding the tracking issues')
@click.option('--days', type=click.IntRange(min=0), help='Lookback window in days for recently added members')
@click.option('--stale-days', type=click.IntRange(min=0), help='Days after which a tracking issue is superseded')
@click.option('--message', help='Issue body template ($org, $repo, $user)')
@click.option('--close-stale/--keep-stale', default=None,
              help='Close a stale issue before opening its replacement')
@click.option('--policy', 'policy_path', type=click.Path(exists=True, dir_okay=False),
              help='Policy YAML file')
@click.option('--token', envvar='GITHUB_TOKEN', help='GitHub token (defaults to $GITHUB_TOKEN)')
@click.option('--mock-state', type=click.Path(exists=True, dir_okay=False),
              help='Run against an in-memory organization loaded from a JSON file')
@click.option('--audit-dir', type=click.Path(file_okay=False),
              help='Directory for the audit trail of actions taken')
@click.option('--json', 'as_json', is_flag=True, help='Print the run summary as JSON')
def run(action, org, repo, days, stale_days, message, close_stale, policy_path,
        token, mock_state, audit_dir, as_json):
    """Run the notify, audit or reconcile action."""
    overrides = {
        "organization": org,
        "repository": repo,
        "lookback_days": days,
        "stale_after_days": stale_days,
        "message": message,
        "close_stale_issue": close_stale,
    }

    try:
        policy = load_policy(policy_path, overrides)
        mode = ActionMode(action)
        policy.require_target(needs_repository=(mode != ActionMode.AUDIT))
    except (ValidationError, ValueError) as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    logger.debug(f'Running the "{action}" action.')
    try:
        controller = ComplianceController(policy, token=token, mock_state=mock_state, audit_dir=audit_dir)
    except (OSError, ValidationError, ValueError, TypeError) as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    try:
        result = controller.run(mode)
    except ConnectorError as e:
        console.print(f"[red]Failed to retrieve required data: {e}[/red]")
        logger.error(f"Run aborted: {e}")
        sys.exit(1)

    summary = create_run_summary(result)
    if as_json:
        click.echo(json.dumps({**summary, "violation_logins": result.violations}, indent=2))
    else:
        display_run_results(result, summary)


@cli.command()
@click.option('--policy', 'policy_path', type=click.Path(exists=True, dir_okay=False),
              help='Policy YAML file')
def show_policy(policy_path):
    """Show the effective compliance policy."""
    try:
        policy = load_policy(policy_path)
    except (ValidationError, ValueError) as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    table = Table(title="Compliance Policy")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")

    for name, value in policy.model_dump().items():
        if name == "message":
            continue
        table.add_row(name, str(value))

    console.print(table)
    console.print(Panel(policy.message, title="Issue body template"))


@cli.command()
@click.option('--login', help='Only show actions concerning this user')
@click.option('--days', default=90, type=click.IntRange(min=0), help='Number of days to look back')
@click.option('--limit', default=100, type=click.IntRange(min=1), help='Maximum number of records')
@click.option('--audit-dir', default='audit', type=click.Path(file_okay=False),
              help='Directory holding the audit trail')
def audit_trail(login, days, limit, audit_dir):
    """Show actions recorded in the audit trail."""
    audit_logger = AuditLogger(audit_dir)
    records = audit_logger.get_events(login=login, start_date=utcnow() - timedelta(days=days),
                                      limit=limit)

    if not records:
        console.print("[yellow]No audit records found[/yellow]")
        return

    table = Table(title=f"Audit Trail ({len(records)})")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Mode", style="green")
    table.add_column("Login", style="blue")
    table.add_column("Action", style="magenta")
    table.add_column("Resource", style="yellow")
    table.add_column("Success", style="red")

    for record in records:
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.event_type,
            record.login,
            record.action,
            record.resource,
            "✓" if record.success else "✗",
        )

    console.print(table)


def display_run_results(result: RunResult, summary: Dict[str, Any]):
    """Display run results."""
    if result.success:
        console.print(f"[green]✓ {result.mode.value} completed successfully[/green]")
    else:
        console.print(f"[red]✗ {result.mode.value} completed with {len(result.errors)} errors[/red]")

    table = Table(title="Run Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("Run ID", summary['run_id'])
    table.add_row("Mode", summary['mode'])
    table.add_row("Violations", str(summary['violations']))
    table.add_row("Total Actions", str(summary['total_actions']))
    table.add_row("Successful", str(summary['successful_actions']))
    table.add_row("Failed", str(summary['failed_actions']))

    console.print(table)

    if result.violations:
        console.print(f"Violations: {', '.join(result.violations)}")

    if result.errors:
        console.print("[red]Errors:[/red]")
        for error in result.errors:
            console.print(f"  - {error}")


def main():
    cli()


if __name__ == "__main__":
    main()
