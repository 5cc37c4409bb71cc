"""Real-time personal journal client service."""
