"""pg_autoctl service control: run, stop, reload, inspect and restart a node's supervised services."""
