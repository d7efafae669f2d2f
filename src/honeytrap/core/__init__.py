"""
Core capture, authentication and analytics components.

This package contains:
- Persistence store
- Per-key rate limiting
- Fire-and-forget ingestion pipeline
- Credential trap
- Admin PIN gate
- Stats aggregation
- Metrics collection
"""
