"""Infrastructure adapters (logging, metrics, database, subscriptions)."""
