"""Interactive coding agent with a reversible read-only plan mode."""
