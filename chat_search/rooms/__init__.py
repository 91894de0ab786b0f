"""Room read model."""
