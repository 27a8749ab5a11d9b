"""Pure ingestion types.  No I/O."""
