"""CLI command that runs the scheduler scans once."""

import json
import logging
from datetime import UTC, datetime, time
from pathlib import Path
from typing import Annotated

import pydantic
import typer

from irb_compliance.cli.display import (
    console,
    create_triggers_table,
    print_error,
    print_info,
    print_success,
)
from irb_compliance.config import WorkflowConfig
from irb_compliance.models.documents import ComplianceMetric, DocumentRecord
from irb_compliance.ports.clock import FixedClock, SystemClock
from irb_compliance.ports.documents import (
    InMemoryComplianceMetricSource,
    InMemoryDocumentRegistry,
)
from irb_compliance.workflow import ComplianceEngine, WorkflowServices

logger = logging.getLogger(__name__)


def _load_records(file_path: Path | None, model: type[pydantic.BaseModel]) -> list:
    if file_path is None:
        return []
    with open(file_path, encoding="utf-8") as f:
        data = json.load(f)
    return [model.model_validate(item) for item in data]


def scan_command(
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", help="Directory holding stored records"),
    ] = None,
    documents_file: Annotated[
        Path | None,
        typer.Option("--documents", help="JSON list of tracked documents", exists=True),
    ] = None,
    metrics_file: Annotated[
        Path | None,
        typer.Option("--metrics", help="JSON list of compliance metrics", exists=True),
    ] = None,
    as_of: Annotated[
        str | None,
        typer.Option("--as-of", help="Scan as of this date (YYYY-MM-DD)"),
    ] = None,
    dispatch: Annotated[
        bool,
        typer.Option("--dispatch", help="Send notifications and open due continuing reviews"),
    ] = False,
) -> None:
    """Run every due-condition scan once and list what came due.

    Example:
        irb scan --data-dir data --documents documents.json --dispatch
    """
    try:
        config = WorkflowConfig.from_env()
    except ValueError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(code=1) from None
    if data_dir is not None:
        config.data_dir = data_dir

    clock = SystemClock()
    if as_of is not None:
        try:
            scan_date = datetime.strptime(as_of, "%Y-%m-%d").date()
        except ValueError:
            print_error(f"Invalid --as-of date: {as_of}")
            raise typer.Exit(code=1) from None
        clock = FixedClock(datetime.combine(scan_date, time(9), tzinfo=UTC))

    try:
        documents = _load_records(documents_file, DocumentRecord)
        metrics = _load_records(metrics_file, ComplianceMetric)
    except (json.JSONDecodeError, pydantic.ValidationError) as e:
        print_error(f"Invalid input file: {e}")
        raise typer.Exit(code=1) from None

    services = WorkflowServices.from_config(
        config,
        clock=clock,
        documents=InMemoryDocumentRegistry(documents),
        metrics=InMemoryComplianceMetricSource(metrics),
    )
    engine = ComplianceEngine(services)
    triggers = engine.scanner.scan_all()

    if not triggers:
        print_info("Nothing is due")
        return

    console.print(create_triggers_table(triggers))

    if dispatch:
        delivered = sum(engine.router.handle(trigger) for trigger in triggers)
        print_success(f"Dispatched {delivered} notifications for {len(triggers)} items")
