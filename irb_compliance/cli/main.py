"""Main CLI entry point for the IRB compliance engine."""

import logging

import typer

from irb_compliance.cli.audit import audit_trail_command
from irb_compliance.cli.classify import classify_ae_command, classify_deviation_command
from irb_compliance.cli.scan import scan_command

app = typer.Typer(
    name="irb",
    help="IRB compliance classification and workflow engine.",
    no_args_is_help=True,
)

app.command("classify-ae")(classify_ae_command)
app.command("classify-deviation")(classify_deviation_command)
app.command("scan")(scan_command)
app.command("audit-trail")(audit_trail_command)


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """IRB compliance classification and workflow engine."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    """Entry point for the irb CLI."""
    app()


if __name__ == "__main__":
    main()
