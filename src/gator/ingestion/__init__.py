"""Feed ingestion engine: staleness scheduling, fetch/parse and post persistence."""
