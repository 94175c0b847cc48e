"""StableLink backend API."""
