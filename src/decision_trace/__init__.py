"""Staged, schema-validated decision trace analysis for unstructured documents."""

__version__ = "0.1.0"
