"""Outbound mail transport adapters."""
