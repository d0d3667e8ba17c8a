"""CLI command that prints the audit trail of a record."""

from pathlib import Path
from typing import Annotated

import typer

from irb_compliance.audit.logger import AuditLogger
from irb_compliance.cli.display import console, create_audit_table, print_info
from irb_compliance.config import WorkflowConfig


def audit_trail_command(
    entity_id: Annotated[str, typer.Argument(help="ID of the record")],
    audit_dir: Annotated[
        Path | None,
        typer.Option("--audit-dir", help="Directory holding audit logs"),
    ] = None,
) -> None:
    """Show every audit event recorded for a record, oldest first."""
    audit_logger = AuditLogger(audit_dir or WorkflowConfig.from_env().audit_dir)
    events = audit_logger.get_events(entity_id)
    if not events:
        print_info(f"No audit events for {entity_id}")
        return
    console.print(create_audit_table(events))
