"""Shared infrastructure: configuration, database, auth, events, middleware."""
