"""Key/value store adapters.

A hosted Redis is the primary store; an in-process map persisted to a local
JSON document is the fallback used when Redis is unconfigured or failing.
"""
