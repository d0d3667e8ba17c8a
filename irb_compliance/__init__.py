"""Compliance classification and workflow engine for IRB oversight."""

__version__ = "0.1.0"
