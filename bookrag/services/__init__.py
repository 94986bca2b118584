"""Service layer: ingestion, retrieval, generation and question answering."""
