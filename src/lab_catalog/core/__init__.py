"""Core building blocks: configuration, logging, errors, caching, concurrency and session."""
