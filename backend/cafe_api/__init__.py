"""Cafe table ordering: access and order-lifecycle core."""
