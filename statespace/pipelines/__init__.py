"""Command-line pipelines."""
