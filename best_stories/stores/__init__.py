"""Data stores for caching.

Stores handle:
- In-memory story cache: upserts, snapshots, readiness state

No business/ranking logic in stores - that belongs in services.
"""
