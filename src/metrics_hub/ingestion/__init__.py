"""Source adapters and the shared ingestion context."""
