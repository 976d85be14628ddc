"""Resume processing: tagging, chunking, loading, embedding and ingestion."""
