"""SQLite storage for articles, deletion tracking, sync metadata, and usage counters."""
