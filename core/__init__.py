"""Shared scaffolding: CLI framework, output, errors, pipeline and key-value stores."""
