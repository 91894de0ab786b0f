"""Index synchronization from room events."""
