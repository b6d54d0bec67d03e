"""Content indexing and hybrid search service."""
