"""Livefeed: append-only live event feeds."""
