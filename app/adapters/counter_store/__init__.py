"""Counter store adapters.

Rate windows are kept in a small key/value store with per-key TTL. The MVP
uses an in-process store; Redis is available for multi-worker deployments
without changing the quota enforcer.
"""
