"""Pipeline stages: canonical upserts, the ingestion log and the orchestrator."""
