"""
CLI commands for evaluating retention rules.

Provides commands to run the rule engine over an entity file and an items
file, and to check an attachment against an entity's attachment directives.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from receptacle.cli.context import CLIContext, handle_receptacle_error, pass_context
from receptacle.core.attachments import AttachmentMatcher
from receptacle.core.loader import load_entity, load_items
from receptacle.core.rules import EvaluationResult, RetentionOutcome, RuleEngine
from receptacle.core.types import EntitySnapshot, ItemSnapshot, ProtectionLevel, parse_datetime
from receptacle.logging_config import correlation_scope, get_logger, log_evaluation_result

logger = get_logger(__name__)

_OUTCOME_STYLES = {
    RetentionOutcome.KEEP: "green",
    RetentionOutcome.DELETE: "red",
    RetentionOutcome.ARCHIVE: "yellow",
}


def _print_result_table(
    console: Console,
    entity: EntitySnapshot,
    items: List[ItemSnapshot],
    result: EvaluationResult,
) -> None:
    table = Table(title=f"Entity {escape(entity.id)} ({entity.retention_policy.display_name})")
    table.add_column("Rank", justify="right")
    table.add_column("Item")
    table.add_column("Date")
    table.add_column("Subject")
    table.add_column("Outcome")
    table.add_column("Importance")

    for rank, item in enumerate(items):
        outcome = result.outcome_for(item.id)
        elevated = result.elevated_importance.get(item.id)
        if elevated is not None:
            importance = f"[bold]{elevated.label}[/]"
        else:
            importance = f"[dim]{item.importance_level.label}[/]"

        table.add_row(
            str(rank),
            escape(item.id),
            item.date.isoformat(),
            escape(item.subject or ""),
            f"[{_OUTCOME_STYLES[outcome]}]{outcome.value}[/]",
            importance,
        )

    console.print(table)

    if result.attachments_to_save:
        attachments = Table(title="Attachments to save")
        attachments.add_column("Item")
        attachments.add_column("Filename")
        attachments.add_column("Destination")
        for directive in result.attachments_to_save:
            destination = directive.action.save_destination
            attachments.add_row(
                escape(directive.item_id),
                escape(directive.filename),
                escape(f"{destination.kind.value}:{destination.location}"),
            )
        console.print(attachments)

    if entity.protection_level is ProtectionLevel.PROTECTED:
        console.print("[dim]Entity is protected: automatic deletion is disabled.[/]")

    console.print(
        f"{len(result.items_to_delete)} to delete, "
        f"{len(result.items_to_archive)} to archive, "
        f"{len(result.attachments_to_save)} attachments, "
        f"{len(result.elevated_importance)} elevated"
    )


@click.command('evaluate')
@click.argument('entity_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('items_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    '--now',
    default=None,
    help='Reference time (ISO-8601). Defaults to the current time.',
)
@click.option(
    '--format',
    '-f',
    'output_format',
    type=click.Choice(['table', 'json'], case_sensitive=False),
    default='table',
    help='Output format (default: table)',
)
@pass_context
@handle_receptacle_error
def evaluate(
    ctx: CLIContext,
    entity_file: Path,
    items_file: Path,
    now: Optional[str],
    output_format: str,
):
    """
    Evaluate an entity's retention rules against its items.

    ITEMS_FILE must list items in the order rank-based policies should see
    them, newest first.

    Examples:

        # Show decisions as a table
        receptacle evaluate entity.yaml items.yaml

        # JSON output at a fixed reference time
        receptacle evaluate entity.yaml items.json --now 2024-06-01T00:00:00Z -f json
    """
    tz = ctx.config.evaluation.get_tzinfo()

    entity = load_entity(entity_file)
    items = load_items(items_file, entity_id=entity.id, tz=tz)
    reference = parse_datetime(now, tz) if now else datetime.now(tz)

    with correlation_scope():
        result = RuleEngine().evaluate(items, entity, now=reference)
        log_evaluation_result(logger, entity.id, result, len(items))

    if output_format.lower() == 'json':
        output = {"entity_id": entity.id, "now": reference.isoformat()}
        output.update(result.to_dict())
        click.echo(json.dumps(output, indent=2))
    else:
        _print_result_table(Console(), entity, items, result)


@click.command('match-attachment')
@click.argument('entity_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--filename', required=True, help='Attachment filename')
@click.option('--mime-type', required=True, help='Attachment MIME type')
@pass_context
@handle_receptacle_error
def match_attachment(ctx: CLIContext, entity_file: Path, filename: str, mime_type: str):
    """
    Check an attachment against each sub-rule's attachment filter.

    Examples:

        receptacle match-attachment entity.yaml --filename invoice.pdf --mime-type application/pdf
    """
    entity = load_entity(entity_file)
    matcher = AttachmentMatcher()

    rules = [
        (index, rule) for index, rule in enumerate(entity.sub_rules)
        if rule.attachment_action is not None
    ]
    if not rules:
        click.echo("No sub-rules with attachment actions.")
        return

    table = Table(title=f"Attachment {escape(filename)} ({escape(mime_type)})")
    table.add_column("Rule", justify="right")
    table.add_column("Match")
    table.add_column("Pattern")
    table.add_column("Destination")
    table.add_column("Result")

    for index, rule in rules:
        action = rule.attachment_action
        reason = matcher.skip_reason(filename, mime_type, action)
        destination = action.save_destination
        table.add_row(
            str(index),
            rule.match_type.value,
            escape(rule.pattern),
            escape(f"{destination.kind.value}:{destination.location}"),
            "[green]save[/]" if reason is None else f"[red]skip[/] {escape(reason)}",
        )

    Console().print(table)
