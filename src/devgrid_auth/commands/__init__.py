"""CLI commands for devgrid-auth."""
