"""Command-line tools: ``bookrag.cli.ingest`` and ``bookrag.cli.ask``."""
