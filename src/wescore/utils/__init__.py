"""
Query helpers: TTL cache, bounded batch queries and retry with backoff.
"""
