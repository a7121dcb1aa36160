"""Command-line interface for tgw-converge."""
