"""Rate limit record stores.

The limiter algorithm talks to a small record-store interface so the
in-memory store used by a single process can later be replaced by a shared
store (e.g., Redis) for multi-instance deployments.
"""
