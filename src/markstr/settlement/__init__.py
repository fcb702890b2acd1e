"""Settlement state machine and oracle signature checks."""
