"""Rate limiting adapters.

This package keeps the limiter behind a small interface so the API can start
with the in-memory sliding-window limiter and later move to a shared store
without changing the HTTP layer.
"""
