"""Search queries and routes."""
