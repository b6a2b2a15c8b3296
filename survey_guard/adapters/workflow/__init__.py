"""Adapters for the external workflow backend that stores survey answers."""
