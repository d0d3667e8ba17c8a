"""Command-line interface for the IRB compliance engine."""
