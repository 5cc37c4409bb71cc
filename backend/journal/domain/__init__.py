"""Journal domain packages: entries, auth, sync and editing."""
