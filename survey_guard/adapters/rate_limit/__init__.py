"""Rate limiting adapters.

This package provides a small abstraction layer so the API can use a Redis
sliding-window limiter when a primary store is configured and a store-backed
window counter otherwise, without changing the HTTP layer.
"""
