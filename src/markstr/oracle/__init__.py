"""Oracle events and tagged protocol messages."""
