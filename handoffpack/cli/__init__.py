"""Command-line entry points for handoff packs."""
