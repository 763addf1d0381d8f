"""Primary-key and search-result caching for ORM queries, backed by memory or Redis."""

__version__ = "0.1.0"

__all__ = ["cache", "config", "hooks", "memory_layer", "redis_layer", "statement", "util"]