"""Rich display utilities for CLI output."""

from datetime import datetime

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from irb_compliance.audit.models import AuditEvent
from irb_compliance.classification.adverse_event import ExpeditedAssessment
from irb_compliance.models.adverse_event import AdverseEvent
from irb_compliance.models.deviation import ProtocolDeviation
from irb_compliance.models.enums import ReportingTimeline
from irb_compliance.scheduler.scanner import TriggerEvent, TriggerKind

console = Console()


def format_flag(value: bool) -> Text:
    """Format a reportable flag: red when a report is required."""
    return Text("YES", style="bold red") if value else Text("no", style="green")


def format_timeline(timeline: ReportingTimeline) -> Text:
    """Format a reporting timeline tier with color coding."""
    style_map = {
        ReportingTimeline.IMMEDIATE: "bold red",
        ReportingTimeline.EXPEDITED_7_DAY: "red",
        ReportingTimeline.EXPEDITED_15_DAY: "yellow",
        ReportingTimeline.ROUTINE: "green",
    }
    return Text(timeline.value, style=style_map.get(timeline, "white"))


def format_datetime(dt: datetime | None) -> str:
    if dt is None:
        return "N/A"
    return dt.strftime("%Y-%m-%d %H:%M UTC")


def create_ae_assessment_table(event: AdverseEvent) -> Table:
    """Create a table summarising an adverse event's classification."""
    table = Table(title="Adverse Event Classification", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Serious Adverse Event", format_flag(event.is_sae))
    table.add_row("Reportable to FDA", format_flag(event.reportable_to_fda))
    table.add_row("Reportable to Sponsor", format_flag(event.reportable_to_sponsor))
    table.add_row("Reportable to IRB", format_flag(event.reportable_to_irb))
    table.add_row("Reporting Timeline", format_timeline(event.reporting_timeline))

    criteria = event.assessment.criteria_met
    if criteria:
        table.add_row("SAE Criteria Met", ", ".join(c.value for c in criteria))
    if event.sae_report_id:
        table.add_row("SAE Report ID", event.sae_report_id)

    return table


def create_expedited_panel(assessment: ExpeditedAssessment, follow_up_days: list[int]) -> Panel:
    """Create a panel explaining expedited reporting and follow-up."""
    color = "red" if assessment.requires_expedited else "green"
    lines = [
        f"[bold {color}]Expedited report: "
        f"{'REQUIRED' if assessment.requires_expedited else 'Not Required'}[/bold {color}]",
    ]
    for reason in assessment.reasons:
        lines.append(f"  - {reason}")
    lines.append("")
    lines.append(
        "[bold]Follow-up reminders (days after reporting):[/bold] "
        + ", ".join(str(d) for d in follow_up_days)
    )
    return Panel("\n".join(lines), title="[bold]Reporting[/bold]", border_style=color)


def create_deviation_table(deviation: ProtocolDeviation) -> Table:
    """Create a table summarising a deviation's classification."""
    table = Table(title="Protocol Deviation Classification", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Type", deviation.deviation_type.value)
    table.add_row("Severity", deviation.severity.value)
    table.add_row("Reportable to FDA", format_flag(deviation.reportable_to_fda))
    table.add_row("Reportable to Sponsor", format_flag(deviation.reportable_to_sponsor))
    table.add_row("Reportable to IRB", format_flag(deviation.reportable_to_irb))
    return table


def create_triggers_table(triggers: list[TriggerEvent]) -> Table:
    """Create a table listing scheduler triggers."""
    style_map = {
        TriggerKind.CONTINUING_REVIEW_DUE: "yellow",
        TriggerKind.DOCUMENT_EXPIRING: "cyan",
        TriggerKind.REVIEW_OVERDUE: "red",
        TriggerKind.COMPLIANCE_ALERT: "bold red",
        TriggerKind.COMPLIANCE_SUMMARY: "blue",
    }
    table = Table(title="Due Items", show_header=True)
    table.add_column("Kind", no_wrap=True)
    table.add_column("Record", style="cyan")
    table.add_column("Due", style="white")
    table.add_column("Recipient", style="dim")

    for trigger in triggers:
        table.add_row(
            Text(trigger.kind.value, style=style_map.get(trigger.kind, "white")),
            f"{trigger.entity_type} {trigger.entity_id}",
            trigger.due_date.isoformat() if trigger.due_date else "-",
            trigger.recipient_id or "-",
        )
    return table


def create_audit_table(events: list[AuditEvent]) -> Table:
    """Create a table listing audit events in order."""
    table = Table(title="Audit Trail", show_header=True)
    table.add_column("Timestamp", style="dim", no_wrap=True)
    table.add_column("Action", style="cyan")
    table.add_column("Actor", style="white")
    table.add_column("Status", justify="center")

    for event in events:
        before = (event.old_value or {}).get("status")
        after = (event.new_value or {}).get("status")
        if before and after and before != after:
            status = f"{before} -> {after}"
        else:
            status = after or "-"
        table.add_row(
            format_datetime(event.timestamp), event.action.value, event.actor_id, status
        )
    return table


def print_error(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")


def print_success(message: str) -> None:
    console.print(f"[bold green]Success:[/bold green] {escape(message)}")


def print_warning(message: str) -> None:
    console.print(f"[bold yellow]Warning:[/bold yellow] {escape(message)}")


def print_info(message: str) -> None:
    console.print(f"[bold blue]Info:[/bold blue] {escape(message)}")
