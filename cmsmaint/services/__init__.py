"""Search index services: reindexing, index data extraction, advisory locks."""
