"""Per-user TODO lists, optionally attached to one of the user's groups."""
