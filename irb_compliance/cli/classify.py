"""CLI commands that classify adverse events and protocol deviations.

Input files hold the same fields accepted when recording the event, e.g.:
    {"study_id": "a1b2c3d4-study", "severity": "LIFE_THREATENING",
     "seriousness": "SERIOUS", "expectedness": "UNEXPECTED",
     "relatedness": "POSSIBLE", "outcome": "NOT_RECOVERED"}
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any

import pydantic
import typer

from irb_compliance.classification.adverse_event import (
    assess_expedited_reporting,
    check_timeline_compliance,
    follow_up_schedule,
)
from irb_compliance.cli.display import (
    console,
    create_ae_assessment_table,
    create_deviation_table,
    create_expedited_panel,
    print_error,
    print_warning,
)
from irb_compliance.machines.adverse_event import AdverseEventMachine
from irb_compliance.machines.deviation import DeviationMachine
from irb_compliance.models.adverse_event import AdverseEventCreate
from irb_compliance.models.deviation import DeviationCreate
from irb_compliance.ports.clock import SystemClock

logger = logging.getLogger(__name__)

CLI_USER = "cli"


def _load_json(file_path: Path) -> dict[str, Any]:
    try:
        with open(file_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print_error(f"Invalid JSON file: {e}")
        raise typer.Exit(code=1) from None
    if not isinstance(data, dict):
        print_error("Input file must contain a JSON object")
        raise typer.Exit(code=1)
    data.setdefault("reported_by", CLI_USER)
    return data


def classify_ae_command(
    file_path: Annotated[
        Path,
        typer.Argument(
            help="Path to JSON file describing the adverse event",
            exists=True,
            readable=True,
        ),
    ],
    output_json: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output result as JSON"),
    ] = False,
) -> None:
    """Classify an adverse event and show its reporting requirements.

    Example:
        irb classify-ae examples/sae_life_threatening.json
    """
    try:
        data = AdverseEventCreate.model_validate(_load_json(file_path))
    except pydantic.ValidationError as e:
        print_error(f"Invalid adverse event: {e}")
        raise typer.Exit(code=1) from None

    clock = SystemClock()
    machine = AdverseEventMachine(sae_sequence=lambda study_id, year: 1)
    event = machine.create(data, CLI_USER, clock.now()).record
    expedited = assess_expedited_reporting(event)
    warnings = check_timeline_compliance(event, clock.today())

    if output_json:
        console.print_json(
            json.dumps(
                {
                    "is_sae": event.is_sae,
                    "reportable_to_fda": event.reportable_to_fda,
                    "reportable_to_sponsor": event.reportable_to_sponsor,
                    "reportable_to_irb": event.reportable_to_irb,
                    "reporting_timeline": event.reporting_timeline.value,
                    "criteria_met": [c.value for c in event.assessment.criteria_met],
                    "requires_expedited": expedited.requires_expedited,
                    "reasons": expedited.reasons,
                    "follow_up_days": follow_up_schedule(event),
                    "compliance_warnings": warnings,
                }
            )
        )
        return

    console.print()
    console.print(create_ae_assessment_table(event))
    console.print()
    console.print(create_expedited_panel(expedited, follow_up_schedule(event)))
    for warning in warnings:
        print_warning(warning)
    console.print()


def classify_deviation_command(
    file_path: Annotated[
        Path,
        typer.Argument(
            help="Path to JSON file describing the protocol deviation",
            exists=True,
            readable=True,
        ),
    ],
    output_json: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output result as JSON"),
    ] = False,
) -> None:
    """Classify a protocol deviation and show who it must be reported to."""
    try:
        data = DeviationCreate.model_validate(_load_json(file_path))
    except pydantic.ValidationError as e:
        print_error(f"Invalid protocol deviation: {e}")
        raise typer.Exit(code=1) from None

    transition = DeviationMachine().create(data, SystemClock().now())
    deviation = transition.record

    if output_json:
        console.print_json(
            json.dumps(
                {
                    "reportable_to_fda": deviation.reportable_to_fda,
                    "reportable_to_sponsor": deviation.reportable_to_sponsor,
                    "reportable_to_irb": deviation.reportable_to_irb,
                    "requires_immediate_notification": any(
                        n.urgent for n in transition.notifications
                    ),
                }
            )
        )
        return

    console.print()
    console.print(create_deviation_table(deviation))
    if transition.notifications:
        print_warning("Immediate notification required")
    console.print()
